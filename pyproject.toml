[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fileident"
version = "0.1.0"
description = "Magic-file parsing, strength ordering and text description helpers for file type identification"
requires-python = ">=3.10"
dependencies = []
keywords = ["magic", "file type", "identification", "mime", "text encoding"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Topic :: Utilities",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
fileident-check = "fileident.magic_load:main"

[tool.hatch.build.targets.wheel]
packages = ["fileident"]

[tool.hatch.build.targets.sdist]
include = ["fileident", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
