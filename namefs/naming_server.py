"""Naming server: indexes storage servers' files and routes client requests."""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import socket
import threading
from typing import Callable

from namefs.cache import LookupCache
from namefs.protocol import ClientCommand, pack_int, parse_registration
from namefs.registry import FileRegistry, list_regular_files

logger = logging.getLogger(__name__)

MAX_INDEXED_FILES = 100
_REGISTRATION_SIZE = 1030
_COMMAND_SIZE = 1024
_NAME_SIZE = 1023
_ACCEPT_POLL = 0.2

_COMMANDS = {str(int(command)): command for command in ClientCommand}
_LOOKUPS = (ClientCommand.READ, ClientCommand.WRITE, ClientCommand.INFO)


class NamingServer:
    """Keeps the name index and serves both storage servers and clients."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        storage_port: int = 5566,
        client_port: int = 5568,
        log_path: str | os.PathLike | None = "log.txt",
        history_path: str | os.PathLike | None = "history.txt",
    ):
        self.host = host
        self.storage_port = storage_port
        self.client_port = client_port
        self.log_path = log_path
        self.registry = FileRegistry()
        self.cache = LookupCache(10, history_path)
        self.directory: str | None = None
        self.port: int | None = None
        self.backup_directory: str | None = None
        self.backup_port: int | None = None
        self.storage_address: tuple | None = None
        self.client_address: tuple | None = None
        self.ready = threading.Event()
        self._state_lock = threading.Lock()
        self._log_lock = threading.Lock()
        self._stopping = threading.Event()
        self._listeners: list[socket.socket] = []

    # -- storage side -------------------------------------------------------

    def register_storage(self, message: bytes | str) -> tuple[str, int]:
        """Record a storage server's ``directory:port`` and index its files."""
        directory, port = parse_registration(message)
        with self._state_lock:
            if self.backup_directory is None:
                self.backup_directory = directory
            self.directory = directory
            self.port = port
        try:
            names = list_regular_files(directory, MAX_INDEXED_FILES)
        except OSError as exc:
            logger.warning("unable to open directory %s: %s", directory, exc)
            names = []
        for name in names:
            self.registry.insert(name, port)
        logger.info("storage server connected: %s on port %d", directory, port)
        return directory, port

    def _require_storage(self) -> tuple[int, str]:
        with self._state_lock:
            if self.port is None or self.directory is None:
                raise ConnectionError("storage server not connected")
            return self.port, self.directory

    def _log(self, line: str) -> None:
        if self.log_path is None:
            return
        with self._log_lock:
            try:
                with open(self.log_path, "a", encoding="utf-8") as book:
                    book.write(line + "\n")
            except OSError as exc:
                logger.warning("could not write log file %s: %s", self.log_path, exc)

    # -- file operations ----------------------------------------------------

    def create(self, path: str) -> str:
        """Create a file, or a directory when ``path`` ends with '/'; returns the reply."""
        port, directory = self._require_storage()
        self.registry.insert(path, port)
        target = f"{directory}/{path}"
        if os.path.exists(target):
            logger.info("file or directory already exists: %s", target)
            return "104: File/Directory already exists!"

        if target.endswith("/"):
            try:
                os.mkdir(target, 0o777)
            except OSError:
                logger.error("error creating directory %s", target)
                response = "102: Error creating directory!"
            else:
                self._log(f"{path} created successfully at {port} port")
                response = "[ACK] Directory created successfully!"
            self._mirror(path, is_directory=True)
            return response

        try:
            with open(target, "w", encoding="utf-8"):
                pass
        except OSError:
            logger.error("error creating file %s", target)
            response = "102: Error creating file!"
        else:
            self._log(f"{path} created successfully at {port} port")
            response = "[ACK] File creation successful!"
        self._mirror(path, is_directory=False)
        return response

    def _mirror(self, path: str, is_directory: bool) -> None:
        with self._state_lock:
            backup_port, backup_directory = self.backup_port, self.backup_directory
        if backup_port is None or backup_directory is None:
            return
        target = f"{backup_directory}/{path}"
        try:
            if is_directory:
                os.mkdir(target, 0o777)
            else:
                with open(target, "w", encoding="utf-8"):
                    pass
        except OSError:
            logger.error("error creating %s in backup directory", target)
            return
        self._log(f"{path} created successfully in backup directory at {backup_port} port")

    def delete(self, path: str) -> str:
        """Delete a file or empty directory and forget its name; returns the reply."""
        try:
            port, directory = self._require_storage()
            target = f"{directory}/{path}"
            logger.info("deleting %s", target)
            try:
                if os.path.isdir(target) and not os.path.islink(target):
                    os.rmdir(target)
                else:
                    os.remove(target)
            except OSError:
                logger.error("error deleting %s", target)
                return "103: Error deleting file!"
            self._log(f"{path} deleted successfully at {port} port")
            return "[ACK] File deletion successful!"
        finally:
            self.registry.remove(path)

    def copy(self, source: str, destination: str) -> str:
        """Copy ``source`` to ``destination`` inside the storage directory; returns the reply."""
        port, directory = self._require_storage()
        logger.info("copying %s to %s", source, destination)
        try:
            src = open(f"{directory}/{source}", "rb")
        except OSError:
            return "101: Error opening source file!"
        with src:
            try:
                dst = open(f"{directory}/{destination}", "wb")
            except OSError:
                return "102: Error creating destination file!"
            with dst:
                shutil.copyfileobj(src, dst)
        self._log(f"Copied {source} to {destination} successfully at {port} port")
        return "[ACK] File copy successful!"

    def resolve(self, command: int, name: str) -> int:
        """Port of the storage server a READ, WRITE or INFO on ``name`` should go to.

        Returns -1 when the name is unknown; a WRITE on an unknown name goes to
        the current storage server.
        """
        command = ClientCommand(command)
        if command not in _LOOKUPS:
            raise ValueError(f"{command.name} is not a lookup command")
        cached = self.cache.lookup(name)
        if cached is not None:
            logger.info("%r found in cache", name)
            return cached
        port = self.registry.find(name)
        if port:
            self.cache.insert(name, port)
            return port
        if command is ClientCommand.WRITE:
            with self._state_lock:
                return self.port if self.port is not None else -1
        return -1

    # -- connections --------------------------------------------------------

    def handle_storage_connection(self, conn: socket.socket) -> None:
        """Read one registration message from a storage server, then close."""
        with conn:
            data = conn.recv(_REGISTRATION_SIZE)
            try:
                self.register_storage(data)
            except ValueError as exc:
                logger.error("rejected storage registration: %s", exc)

    @staticmethod
    def _receive_name(conn: socket.socket) -> str | None:
        data = conn.recv(_NAME_SIZE)
        if not data:
            return None
        return data.decode("utf-8", errors="replace").rstrip("\0")

    @staticmethod
    def _reply(conn: socket.socket, action: Callable[..., str], *args: str) -> None:
        try:
            response = action(*args)
        except ConnectionError as exc:
            logger.error("%s", exc)
            return
        conn.sendall(response.encode("utf-8"))

    def handle_client_connection(self, conn: socket.socket) -> None:
        """Serve one client's requests until it disconnects."""
        with conn:
            while True:
                data = conn.recv(_COMMAND_SIZE)
                if not data:
                    break
                command = _COMMANDS.get(data.decode("utf-8", errors="replace").rstrip("\0"))
                if command is None:
                    continue
                name = self._receive_name(conn)
                if name is None:
                    break
                if command in _LOOKUPS:
                    conn.sendall(pack_int(self.resolve(command, name)))
                elif command is ClientCommand.CREATE:
                    self._reply(conn, self.create, name)
                elif command is ClientCommand.DELETE:
                    self._reply(conn, self.delete, name)
                elif command is ClientCommand.COPY:
                    destination = self._receive_name(conn)
                    if destination is None:
                        break
                    self._reply(conn, self.copy, name, destination)

    # -- serving ------------------------------------------------------------

    def _listen(self, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, port))
            sock.listen()
        except OSError:
            sock.close()
            raise
        sock.settimeout(_ACCEPT_POLL)
        return sock

    def _accept_loop(self, listener: socket.socket, handler: Callable[[socket.socket], None]) -> None:
        while not self._stopping.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            conn.settimeout(None)
            threading.Thread(target=handler, args=(conn,), daemon=True).start()

    def serve_forever(self) -> None:
        """Accept storage servers and clients until :meth:`shutdown` is called."""
        self._stopping.clear()
        storage_listener = self._listen(self.storage_port)
        try:
            client_listener = self._listen(self.client_port)
        except OSError:
            storage_listener.close()
            raise
        self._listeners = [storage_listener, client_listener]
        self.storage_address = storage_listener.getsockname()
        self.client_address = client_listener.getsockname()
        logger.info("listening for storage servers on %s", self.storage_address)
        logger.info("listening for clients on %s", self.client_address)
        threads = [
            threading.Thread(
                target=self._accept_loop,
                args=(storage_listener, self.handle_storage_connection),
                daemon=True,
            ),
            threading.Thread(
                target=self._accept_loop,
                args=(client_listener, self.handle_client_connection),
                daemon=True,
            ),
        ]
        for thread in threads:
            thread.start()
        self.ready.set()
        try:
            for thread in threads:
                thread.join()
        finally:
            for listener in self._listeners:
                listener.close()
            self.ready.clear()

    def shutdown(self) -> None:
        """Stop accepting connections."""
        self._stopping.set()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the naming server.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--storage-port", type=int, default=5566)
    parser.add_argument("--client-port", type=int, default=5568)
    parser.add_argument("--log", default="log.txt")
    parser.add_argument("--history", default="history.txt")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    server = NamingServer(args.host, args.storage_port, args.client_port, args.log, args.history)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        server.shutdown()
    return 0