"""Client for the naming server and the storage servers it points to."""

from __future__ import annotations

import argparse
import socket
import sys
from typing import Callable

from namefs.protocol import ClientCommand, StorageCommand, pack_int, unpack_int

MENU = (
    "1. Read\n2. Write\n3. Get info\n4. Create File\n5. Delete File\n"
    "6. Copy File\nEnter your choice: "
)
NOT_FOUND = "106: File not found"

_REPLY_SIZE = 1024
_LOOKUPS = (ClientCommand.READ, ClientCommand.WRITE, ClientCommand.INFO)


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            raise ConnectionError("connection closed before a full reply arrived")
        data += chunk
    return data


def _encode_name(name: str) -> bytes:
    if not name:
        raise ValueError("file name must not be empty")
    return name.encode("utf-8")


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace").rstrip("\0")


class NamingClient:
    """A connection to the naming server's client port."""

    def __init__(self, host: str = "127.0.0.1", nm_port: int = 5568):
        self.host = host
        self.nm_port = nm_port
        self._sock: socket.socket | None = None

    def connect(self) -> "NamingClient":
        """Open the connection if it is not already open."""
        if self._sock is None:
            self._sock = socket.create_connection((self.host, self.nm_port))
        return self

    def close(self) -> None:
        """Close the connection."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def _send_request(self, command: ClientCommand, *names: str) -> socket.socket:
        if self._sock is None:
            raise ConnectionError("not connected to the naming server")
        encoded = [_encode_name(name) for name in names]
        self._sock.sendall(str(int(command)).encode("ascii"))
        for name in encoded:
            self._sock.sendall(name)
        return self._sock

    def _exchange(self, command: ClientCommand, *names: str) -> str:
        sock = self._send_request(command, *names)
        reply = sock.recv(_REPLY_SIZE)
        if not reply:
            raise ConnectionError("naming server closed the connection")
        return _decode(reply)

    def locate(self, command: int, name: str) -> int:
        """Port of the storage server for a READ, WRITE or INFO on ``name``; -1 if unknown."""
        command = ClientCommand(command)
        if command not in _LOOKUPS:
            raise ValueError(f"{command.name} is not a lookup command")
        sock = self._send_request(command, name)
        return unpack_int(_recv_exact(sock, 4))

    def create(self, name: str) -> str:
        """Ask the naming server to create a file or directory; returns its reply."""
        return self._exchange(ClientCommand.CREATE, name)

    def delete(self, name: str) -> str:
        """Ask the naming server to delete a file; returns its reply."""
        return self._exchange(ClientCommand.DELETE, name)

    def copy(self, source: str, destination: str) -> str:
        """Ask the naming server to copy ``source`` to ``destination``; returns its reply."""
        return self._exchange(ClientCommand.COPY, source, destination)

    def __enter__(self) -> "NamingClient":
        return self.connect()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _open_storage(host: str, port: int, command: StorageCommand, name: str) -> socket.socket:
    encoded = _encode_name(name)
    sock = socket.create_connection((host, port))
    try:
        sock.sendall(pack_int(command))
        sock.sendall(encoded)
    except OSError:
        sock.close()
        raise
    return sock


def read_from_storage(host: str, port: int, name: str) -> str:
    """Everything a storage server sends back for a read of ``name``."""
    with _open_storage(host, port, StorageCommand.READ, name) as sock:
        chunks = list(iter(lambda: sock.recv(_REPLY_SIZE), b""))
    return _decode(b"".join(chunks))


def write_to_storage(host: str, port: int, name: str, data: str | bytes) -> str:
    """Append ``data`` to ``name`` on a storage server; returns its reply."""
    payload = data.encode("utf-8") if isinstance(data, str) else data
    with _open_storage(host, port, StorageCommand.APPEND, name) as sock:
        sock.sendall(payload)
        return _decode(sock.recv(_REPLY_SIZE))


def info_from_storage(host: str, port: int, name: str) -> str:
    """Size and permissions of ``name`` as reported by a storage server."""
    with _open_storage(host, port, StorageCommand.INFO, name) as sock:
        return _decode(sock.recv(_REPLY_SIZE))


def _ask_word(input_func: Callable[[str], str], prompt: str) -> str:
    while True:
        words = input_func(prompt).split()
        if words:
            return words[0]


def _storage_session(
    command: ClientCommand,
    port: int,
    storage_host: str,
    input_func: Callable[[str], str],
    output_func: Callable[[str], None],
) -> None:
    name = _ask_word(input_func, "Enter file name: ")
    if command is ClientCommand.WRITE:
        data = _ask_word(input_func, "Enter the data: ")
    try:
        if command is ClientCommand.READ:
            output_func(f"Connected to SS at port: {port}")
            output_func("Received data: " + read_from_storage(storage_host, port, name))
        elif command is ClientCommand.WRITE:
            output_func(f"Connected to SS at port: {port}")
            output_func(write_to_storage(storage_host, port, name, data))
        else:
            output_func(f"Connected to SS at port: {port}")
            output_func(info_from_storage(storage_host, port, name))
    except (OSError, OverflowError) as exc:
        output_func(f"SS connection error: {exc}")


def run_interactive(
    client: NamingClient,
    storage_host: str = "127.0.0.1",
    input_func: Callable[[str], str] = input,
    output_func: Callable[[str], None] = print,
) -> None:
    """Menu-driven session until input runs out or the naming server goes away."""
    while True:
        try:
            try:
                choice = ClientCommand(int(input_func(MENU).strip()))
            except ValueError:
                continue
            if choice in _LOOKUPS:
                name = _ask_word(input_func, "Enter Filename: ")
                port = client.locate(choice, name)
                if port == -1 and choice is not ClientCommand.WRITE:
                    output_func(NOT_FOUND)
                    continue
                _storage_session(choice, port, storage_host, input_func, output_func)
            elif choice is ClientCommand.CREATE:
                output_func(client.create(_ask_word(input_func, "Enter Filename: ")))
            elif choice is ClientCommand.DELETE:
                output_func(client.delete(_ask_word(input_func, "Enter Filename: ")))
            else:
                source = _ask_word(input_func, "Enter Source Filename: ")
                destination = _ask_word(input_func, "Enter Destination Filename: ")
                output_func(client.copy(source, destination))
        except EOFError:
            return
        except (ConnectionError, OSError) as exc:
            output_func(f"Naming server connection lost: {exc}")
            return


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Interactive file system client.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--nm-port", type=int, default=5568)
    parser.add_argument("--storage-host", default="127.0.0.1")
    args = parser.parse_args(argv)
    client = NamingClient(args.host, args.nm_port)
    try:
        client.connect()
    except OSError as exc:
        print(f"NM connection error: {exc}", file=sys.stderr)
        return 1
    print("Connection Successful")
    with client:
        run_interactive(client, args.storage_host)
    return 0