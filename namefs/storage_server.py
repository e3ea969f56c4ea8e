"""Storage server: serves reads, appends and file information to clients."""

from __future__ import annotations

import argparse
import logging
import os
import socket
import threading

from namefs.protocol import StorageCommand, format_registration, unpack_int

logger = logging.getLogger(__name__)

_PATH_SIZE = 1024
_DATA_SIZE = 1024
_LINE_SIZE = 1023
_ACCEPT_POLL = 0.2

READ_TERMINATOR = b"STOP\nFile read successfully"
WRITE_OK = "File Write Successful"
OPEN_ERROR = "101: Error opening source file"
INFO_OPEN_ERROR = "101: Error opening source file!"
INFO_ERROR = " 105: Error getting file information!"


class _InfoUnavailable(OSError):
    """Raised when a file could be opened but not stat'ed."""


class StorageServer:
    """Holds one directory and answers client requests on ``client_port``."""

    def __init__(
        self,
        client_port: int,
        directory: str | os.PathLike | None = None,
        host: str = "127.0.0.1",
        nm_port: int = 5566,
        log_path: str | os.PathLike | None = "log.txt",
    ):
        self.client_port = client_port
        self.directory = os.fspath(directory) if directory is not None else os.getcwd()
        self.host = host
        self.nm_port = nm_port
        self.log_path = log_path
        self.address: tuple | None = None
        self.ready = threading.Event()
        self._stopping = threading.Event()
        self._log_lock = threading.Lock()

    # -- naming server ------------------------------------------------------

    def register_with_naming_server(self) -> None:
        """Announce this server's directory and client port to the naming server."""
        with socket.create_connection((self.host, self.nm_port)) as sock:
            sock.sendall(format_registration(self.directory, self.client_port))
        logger.info("connected to naming server")

    # -- file operations ----------------------------------------------------

    def _resolve(self, path: str) -> str:
        return os.path.join(self.directory, path)

    def _log(self, line: str) -> None:
        if self.log_path is None:
            return
        with self._log_lock:
            try:
                with open(self.log_path, "a", encoding="utf-8") as book:
                    book.write(line + "\n")
            except OSError as exc:
                logger.warning("could not write log file %s: %s", self.log_path, exc)

    def read_file(self, path: str) -> list[bytes]:
        """Contents of ``path`` as lines of at most 1023 bytes each."""
        with open(self._resolve(path), "rb") as source:
            lines = list(iter(lambda: source.readline(_LINE_SIZE), b""))
        self._log(f"{path} read successfully at {self.client_port} port")
        return lines

    def append_file(self, path: str, data: bytes | str) -> str:
        """Append ``data`` to ``path``, creating it if needed; returns the reply."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        with open(self._resolve(path), "ab") as target:
            target.write(data)
        self._log(f"{path} written successfully at {self.client_port} port")
        return WRITE_OK

    def file_info(self, path: str) -> str:
        """Size and permission bits of ``path``; the file is created if missing."""
        target = self._resolve(path)
        with open(target, "a", encoding="utf-8"):
            pass
        try:
            status = os.stat(target)
        except OSError as exc:
            raise _InfoUnavailable(str(exc)) from exc
        return f"Size: {status.st_size} bytes | Permissions: {status.st_mode & 0o777:o}"

    # -- connections --------------------------------------------------------

    @staticmethod
    def _receive_command(conn: socket.socket) -> int:
        data = b""
        while len(data) < 4:
            chunk = conn.recv(4 - len(data))
            if not chunk:
                return -1
            data += chunk
        return unpack_int(data)

    @staticmethod
    def _receive_text(conn: socket.socket, size: int) -> str:
        return conn.recv(size).decode("utf-8", errors="replace").rstrip("\0")

    def handle_client(self, conn: socket.socket) -> None:
        """Serve one request from a client, then close the connection."""
        with conn:
            command = self._receive_command(conn)
            path = self._receive_text(conn, _PATH_SIZE)
            if command == StorageCommand.READ:
                try:
                    lines = self.read_file(path)
                except OSError:
                    logger.error("error opening source file %s", path)
                    conn.sendall(OPEN_ERROR.encode("utf-8"))
                    return
                for line in lines:
                    conn.sendall(line)
                conn.sendall(READ_TERMINATOR)
            elif command == StorageCommand.APPEND:
                data = conn.recv(_DATA_SIZE).rstrip(b"\0")
                try:
                    reply = self.append_file(path, data)
                except OSError:
                    logger.error("error opening source file %s", path)
                    reply = OPEN_ERROR
                conn.sendall(reply.encode("utf-8"))
            else:
                try:
                    reply = self.file_info(path)
                except _InfoUnavailable:
                    logger.error("error getting file information for %s", path)
                    reply = INFO_ERROR
                except OSError:
                    logger.error("error opening source file %s", path)
                    reply = INFO_OPEN_ERROR
                conn.sendall(reply.encode("utf-8"))

    # -- serving ------------------------------------------------------------

    def serve_forever(self) -> None:
        """Accept clients one at a time until :meth:`shutdown` is called."""
        self._stopping.clear()
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((self.host, self.client_port))
            listener.listen(4)
            listener.settimeout(_ACCEPT_POLL)
            self.address = listener.getsockname()
            logger.info("listening for clients on %s", self.address)
            self.ready.set()
            try:
                while not self._stopping.is_set():
                    try:
                        conn, _ = listener.accept()
                    except socket.timeout:
                        continue
                    except OSError as exc:
                        logger.error("accept error: %s", exc)
                        break
                    conn.settimeout(None)
                    logger.info("client connected")
                    try:
                        self.handle_client(conn)
                    except OSError as exc:
                        logger.error("client connection failed: %s", exc)
            finally:
                self.ready.clear()

    def shutdown(self) -> None:
        """Stop accepting clients."""
        self._stopping.set()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a storage server.")
    parser.add_argument("client_port", type=int)
    parser.add_argument("--directory", default=None)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--nm-port", type=int, default=5566)
    parser.add_argument("--log", default="log.txt")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    server = StorageServer(args.client_port, args.directory, args.host, args.nm_port, args.log)
    try:
        server.register_with_naming_server()
    except OSError as exc:
        logger.error("connection to naming server failed: %s", exc)
        return 1
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        server.shutdown()
    return 0