[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gamedig"
version = "0.1.0"
description = "Building blocks for game server queries: packet buffers, error types, pcapng traffic capture and game id naming rules."
requires-python = ">=3.10"
dependencies = []
keywords = ["gamedig", "game server", "query", "pcap", "pcapng", "buffer", "game id"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment",
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
gamedig-id-check = "gamedig.idrules:main"

[tool.hatch.build.targets.wheel]
packages = ["gamedig"]

[tool.hatch.build.targets.sdist]
include = ["gamedig", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
