"""Library management backend: books, users and the loan lifecycle."""

__version__ = "1.0.0"
