"""Ghostwriter - credits ledger and account backend for the songwriting studio."""

__version__ = "0.1.0"
