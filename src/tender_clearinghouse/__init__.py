"""Tender Clearinghouse — verification-gated public-works tendering engine."""

__version__ = "0.1.0"
