"""API module for external book search providers.

Provides blocking HTTP clients and async adapters over them.
"""

from .google_books import GoogleBooksClient
from .openlibrary import OpenLibraryClient
from .providers import AsyncProvider, default_providers

__all__ = [
    "GoogleBooksClient",
    "OpenLibraryClient",
    "AsyncProvider",
    "default_providers",
]
