[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chunkvault"
version = "0.1.0"
description = "File backup and restore with directory monitoring and chunked, gzip-compressed storage"
requires-python = ">=3.10"
keywords = ["backup", "restore", "chunking", "gzip", "file-watcher"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Backup",
]
dependencies = [
    "watchdog",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
chunkvault = "chunkvault.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["chunkvault"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
