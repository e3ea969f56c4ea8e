[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "namefs"
version = "0.1.0"
description = "A small networked file system with a naming server, storage servers and an interactive client"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "distributed file system",
    "naming server",
    "storage server",
    "sockets",
    "lookup cache",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
namefs-naming-server = "namefs.naming_server:main"
namefs-storage-server = "namefs.storage_server:main"
namefs-client = "namefs.client:main"

[tool.hatch.build.targets.wheel]
packages = ["namefs"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
