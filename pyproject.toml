[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pgpkeyserver"
version = "0.1.0"
description = "OpenPGP key material records for a key server: packet framing, signature and key parsing, self-signature checks, resolution and ordering"
requires-python = ">=3.10"
dependencies = []
keywords = ["openpgp", "pgp", "keyserver", "hkp", "sks", "fingerprint"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pgpkeyserver"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
