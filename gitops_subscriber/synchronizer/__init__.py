"""Synchronizer module for the downstream reconciler."""

from .in_memory import DEFAULT_KUBE_RESOURCES, InMemorySynchronizer, Registration
from .synchronizer import KubeResource, Synchronizer, Validator

__all__ = [
    "Synchronizer",
    "Validator",
    "KubeResource",
    "InMemorySynchronizer",
    "Registration",
    "DEFAULT_KUBE_RESOURCES",
]
