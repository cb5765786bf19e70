[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "boltkit"
version = "0.1.0"
description = "Low-level tools for reading, inspecting and repairing page-based B+tree database files: pages, meta pages, freelists and surgery."
requires-python = ">=3.10"
dependencies = []
keywords = ["database", "btree", "freelist", "pages", "recovery", "key-value"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: System :: Recovery Tools",
]

[project.optional-dependencies]
test = ["pytest", "hypothesis"]

[tool.hatch.build.targets.wheel]
packages = ["boltkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
