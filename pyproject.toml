[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "mazewar"
version = "0.1.0"
description = "A multi-player Maze War game server speaking a compact binary packet protocol over TCP"
requires-python = ">=3.10"
dependencies = []
keywords = ["game", "maze", "multiplayer", "server", "tcp"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment :: First Person Shooters",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mazewar = "mazewar.main:main"

[tool.setuptools.packages.find]
include = ["mazewar*"]

[tool.pytest.ini_options]
addopts = "-ra"
