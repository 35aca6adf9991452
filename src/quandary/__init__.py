"""Quandary: Would-You-Rather voting with live rooms and gamified progression."""

__version__ = "0.1.0"
