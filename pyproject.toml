[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lanchat"
version = "0.1.0"
description = "A small LAN chat server with a JSON polling API for browser clients"
requires-python = ">=3.10"
dependencies = [
    "psutil",
]
keywords = ["chat", "lan", "http", "server", "polling"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
lanchat = "lanchat.server:main"

[tool.hatch.build.targets.wheel]
packages = ["lanchat"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
