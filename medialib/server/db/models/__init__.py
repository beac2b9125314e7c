"""Module for database models."""

from . import media  # noqa: F401

__all__ = [
    "media",
]
