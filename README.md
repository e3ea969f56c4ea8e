# namefs

namefs is a small networked file system made of three parts:

- a **naming server** (`namefs.naming_server.NamingServer`) that keeps track
  of which storage server holds which file, answers lookups from clients and
  carries out create, delete and copy requests;
- **storage servers** (`namefs.storage_server.StorageServer`) that register a
  directory with the naming server and serve read, append and
  file-information requests directly to clients;
- an interactive **client** (`namefs.client`) that asks the naming server
  where a file lives and then talks to that storage server.

Everything runs over TCP, by default on `127.0.0.1`. Only the standard library
is used.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Running

Start the naming server first. By default it listens on port 5566 for storage
servers and on port 5568 for clients:

```
namefs-naming-server
```

Options: `--host`, `--storage-port`, `--client-port`, `--log` (default
`log.txt`) and `--history` (default `history.txt`).

Then start a storage server, giving the port on which it accepts clients:

```
namefs-storage-server 5567
```

It serves the current directory unless `--directory` is given; other options
are `--host`, `--nm-port` (the naming server's storage port, default 5566) and
`--log`. On start-up it sends `directory:port` to the naming server, which
indexes up to 100 regular files found directly in that directory.

Finally start the client:

```
namefs-client
```

Options: `--host`, `--nm-port` (default 5568) and `--storage-host`. The
client shows a menu:

```
1. Read
2. Write
3. Get info
4. Create File
5. Delete File
6. Copy File
```

Read, Write and Get info first ask the naming server for the port of the
storage server holding the file, then connect to it. For Read and Get info an
unknown file prints `106: File not found`; a Write to an unknown file goes to
the most recently registered storage server, which creates the file. Get info
reports `Size: <n> bytes | Permissions: <octal>`.

Create, Delete and Copy are carried out by the naming server itself, on the
directory of the most recently registered storage server, and its reply is
printed, for example `[ACK] File creation successful!`,
`104: File/Directory already exists!` or `103: Error deleting file!`. A name
ending in `/` is created as a directory.

## Lookups and logs

The naming server keeps the last ten lookup results in a `LookupCache` and
rewrites the history file with the cached names whenever an entry is added.
The naming server appends successful creates, deletes and copies to its log
file; a storage server appends successful reads and writes to its own.

## Using it from Python

```python
from namefs.client import NamingClient, read_from_storage, info_from_storage

with NamingClient("127.0.0.1", 5568) as client:
    print(client.create("notes.txt"))
    print(client.copy("notes.txt", "notes-copy.txt"))
    port = client.locate(1, "notes.txt")   # -1 if unknown

print(read_from_storage("127.0.0.1", port, "notes.txt"))
print(info_from_storage("127.0.0.1", port, "notes.txt"))
```

`read_from_storage` returns the file's contents followed by the line
`STOP` and `File read successfully`. `write_to_storage` appends data and
returns `File Write Successful`.

`NamingServer` and `StorageServer` run with `serve_forever()` and stop with
`shutdown()`; their `ready` event is set once they are listening.
`namefs.protocol` holds the command enums and the wire helpers, and
`namefs.registry.FileRegistry` the name-to-port index.

## Limitations

- The naming server and storage servers must share a file system: create,
  delete and copy act directly on the last registered directory.
- Files are not replicated or backed up, and there is no authentication.
- A storage server handles one client connection at a time.
- The naming server does not notice when a storage server goes away.