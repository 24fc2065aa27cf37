"""Client module for reading and writing cluster objects."""

from .client import Client
from .in_memory import InMemoryClient

__all__ = [
    "Client",
    "InMemoryClient",
]
