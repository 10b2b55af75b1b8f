[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "undelete"
version = "0.1.0"
description = "Find and recover deleted files on FAT32 and NTFS volumes"
requires-python = ">=3.10"
dependencies = []
keywords = ["undelete", "recovery", "fat32", "ntfs", "forensics", "filesystem"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Recovery Tools",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
undelete = "undelete.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["undelete"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
