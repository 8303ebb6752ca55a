"""OpenPGP key material records, parsing, resolution and ordering for a key server."""

__version__ = "0.1.0"