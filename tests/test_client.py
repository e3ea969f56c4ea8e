import socket
import threading

import pytest

from namefs.client import (
    NamingClient,
    info_from_storage,
    main,
    read_from_storage,
    run_interactive,
    write_to_storage,
)
from namefs.protocol import ClientCommand, pack_int
from namefs.storage_server import StorageServer

CONTENT = "first line\nsecond line\n"


def _recv_exact(conn, size):
    data = b""
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def _drain(conn):
    while conn.recv(1024):
        pass


class _FakeServer:
    def __init__(self, handler):
        self.handler = handler
        self.listener = socket.create_server(("127.0.0.1", 0))
        self.port = self.listener.getsockname()[1]
        self.received = []
        self.errors = []
        self._thread = threading.Thread(target=self._run, daemon=True)

    def __enter__(self):
        self._thread.start()
        return self

    def __exit__(self, *exc):
        self._thread.join(5)
        self.listener.close()

    def _run(self):
        self.listener.settimeout(5)
        try:
            conn, _ = self.listener.accept()
            with conn:
                conn.settimeout(5)
                self.handler(conn, self.received)
        except Exception as exc:  # recorded for the test to inspect
            self.errors.append(exc)


def _inputs(*lines):
    pending = list(lines)

    def fake_input(prompt):
        if not pending:
            raise EOFError
        return pending.pop(0)

    return fake_input


@pytest.fixture
def storage(tmp_path):
    (tmp_path / "notes.txt").write_text(CONTENT)
    server = StorageServer(0, tmp_path, "127.0.0.1", 5566, tmp_path / "log.txt")
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    assert server.ready.wait(5)
    yield server
    server.shutdown()
    thread.join(5)


def test_locate_sends_command_and_name_and_returns_port():
    expected = b"1" + b"notes.txt"

    def handler(conn, received):
        received.append(_recv_exact(conn, len(expected)))
        conn.sendall(pack_int(5570))

    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        port = client.locate(ClientCommand.READ, "notes.txt")
    assert port == 5570
    assert server.received == [expected]


def test_locate_reports_unknown_file_as_minus_one():
    def handler(conn, received):
        received.append(_recv_exact(conn, len(b"3missing")))
        conn.sendall(pack_int(-1))

    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        assert client.locate(ClientCommand.INFO, "missing") == -1
    assert server.received == [b"3missing"]


def test_locate_rejects_non_lookup_command():
    client = NamingClient()
    with pytest.raises(ValueError):
        client.locate(ClientCommand.CREATE, "notes.txt")


def test_locate_requires_connection():
    client = NamingClient()
    with pytest.raises(ConnectionError):
        client.locate(ClientCommand.READ, "notes.txt")


def test_empty_name_is_rejected():
    def handler(conn, received):
        received.append(conn.recv(1024))

    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        with pytest.raises(ValueError):
            client.create("")
    assert server.received == [b""]


def test_locate_raises_when_server_closes_early():
    def handler(conn, received):
        received.append(_recv_exact(conn, len(b"1notes.txt")))

    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        with pytest.raises(ConnectionError):
            client.locate(ClientCommand.READ, "notes.txt")


def test_create_returns_server_reply():
    reply = b"[ACK] File creation successful!"

    def handler(conn, received):
        received.append(_recv_exact(conn, len(b"4new.txt")))
        conn.sendall(reply)

    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        assert client.create("new.txt") == reply.decode()
    assert server.received == [b"4new.txt"]


def test_delete_returns_server_reply():
    reply = b"[ACK] File deletion successful!"

    def handler(conn, received):
        received.append(_recv_exact(conn, len(b"5old.txt")))
        conn.sendall(reply)

    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        assert client.delete("old.txt") == reply.decode()
    assert server.received == [b"5old.txt"]


def test_copy_sends_both_names():
    reply = b"[ACK] File copy successful!"
    expected = b"6" + b"a.txt" + b"b.txt"

    def handler(conn, received):
        received.append(_recv_exact(conn, len(expected)))
        conn.sendall(reply)

    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        assert client.copy("a.txt", "b.txt") == reply.decode()
    assert server.received == [expected]


def test_context_manager_closes_connection():
    def handler(conn, received):
        _drain(conn)
        received.append("closed")

    with _FakeServer(handler) as server:
        with NamingClient(nm_port=server.port) as client:
            pass
    assert server.received == ["closed"]
    with pytest.raises(ConnectionError):
        client.create("x")


def test_read_from_real_storage_server(storage):
    result = read_from_storage("127.0.0.1", storage.address[1], "notes.txt")
    assert result == CONTENT + "STOP\nFile read successfully"


def test_read_missing_file_from_storage(storage):
    result = read_from_storage("127.0.0.1", storage.address[1], "absent.txt")
    assert result == "101: Error opening source file"


def test_info_from_real_storage_server(storage):
    result = info_from_storage("127.0.0.1", storage.address[1], "notes.txt")
    assert result.startswith(f"Size: {len(CONTENT.encode())} bytes | Permissions: ")


def test_write_to_storage_sends_command_name_and_data():
    expected = pack_int(2) + b"notes.txt" + b"hello"

    def handler(conn, received):
        received.append(_recv_exact(conn, len(expected)))
        conn.sendall(b"File Write Successful")

    with _FakeServer(handler) as server:
        reply = write_to_storage("127.0.0.1", server.port, "notes.txt", "hello")
    assert reply == "File Write Successful"
    assert server.received == [expected]


def test_interactive_reports_missing_file():
    def handler(conn, received):
        received.append(_recv_exact(conn, len(b"1missing.txt")))
        conn.sendall(pack_int(-1))
        _drain(conn)

    outputs = []
    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        run_interactive(client, "127.0.0.1", _inputs("1", "missing.txt"), outputs.append)
    assert outputs == ["106: File not found"]


def test_interactive_create_prints_reply():
    reply = "[ACK] File creation successful!"

    def handler(conn, received):
        received.append(_recv_exact(conn, len(b"4new.txt")))
        conn.sendall(reply.encode())
        _drain(conn)

    outputs = []
    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        run_interactive(client, "127.0.0.1", _inputs("4", "new.txt"), outputs.append)
    assert outputs == [reply]
    assert server.received == [b"4new.txt"]


def test_interactive_read_goes_to_storage_server(storage):
    storage_port = storage.address[1]

    def handler(conn, received):
        received.append(_recv_exact(conn, len(b"1notes.txt")))
        conn.sendall(pack_int(storage_port))
        _drain(conn)

    outputs = []
    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        run_interactive(client, "127.0.0.1", _inputs("1", "notes.txt", "notes.txt"), outputs.append)
    assert outputs[0] == f"Connected to SS at port: {storage_port}"
    assert outputs[1] == "Received data: " + CONTENT + "STOP\nFile read successfully"


def test_interactive_ignores_invalid_choices():
    outputs = []
    run_interactive(NamingClient(), "127.0.0.1", _inputs("abc", "9", ""), outputs.append)
    assert outputs == []


def test_interactive_stops_when_naming_server_disconnects():
    def handler(conn, received):
        received.append(_recv_exact(conn, len(b"1notes.txt")))

    outputs = []
    with _FakeServer(handler) as server, NamingClient(nm_port=server.port) as client:
        run_interactive(client, "127.0.0.1", _inputs("1", "notes.txt", "4", "x"), outputs.append)
    assert len(outputs) == 1
    assert outputs[0].startswith("Naming server connection lost")


def test_main_fails_without_naming_server():
    probe = socket.create_server(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    assert main(["--nm-port", str(port)]) == 1