[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dconbridge"
version = "0.1.0"
description = "TCP server that relays client requests to a serial device and returns its replies"
requires-python = ">=3.10"
dependencies = []
keywords = ["serial", "tty", "termios", "tcp", "bridge", "gateway"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Terminals :: Serial",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
dconbridge = "dconbridge.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["dconbridge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
