"""Domain models for idlink."""

from .contact import Contact, IdentifyResult, LinkPrecedence

__all__ = [
    "Contact",
    "IdentifyResult",
    "LinkPrecedence",
]
