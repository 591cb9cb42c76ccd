[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "smolcode"
version = "0.1.0"
description = "Coding-assistant toolkit: conversation history in SQLite, multi-file code generation and terminal display helpers"
requires-python = ">=3.10"
keywords = ["code generation", "assistant", "conversation history", "sqlite", "cli"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Code Generators",
]
dependencies = [
    "requests",
    "rich",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
smolcode = "smolcode.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["smolcode"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
