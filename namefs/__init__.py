"""A small networked file system: naming server, storage servers and client."""

__version__ = "0.1.0"