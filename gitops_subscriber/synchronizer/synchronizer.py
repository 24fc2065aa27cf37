"""Synchronizer module for the downstream reconciler of deployables.

The synchronizer applies registered deployables to a target environment. The
subscription engine only registers templates and tells the synchronizer which
of them are still valid so that stale ones are garbage collected.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from gitops_subscriber.manifest import Deployable, GroupVersionKind, NamespacedName


@dataclass(frozen=True)
class KubeResource:
    """A kind of resource the synchronizer knows how to apply."""

    gvk: GroupVersionKind
    namespaced: bool = True


@dataclass
class Validator:
    """Records the deployables that are still valid for a registration source."""

    source: str
    """The registration source tag the validator applies to."""

    valid: dict[NamespacedName, set[NamespacedName]] = field(default_factory=dict)
    """Valid deployable keys per host."""

    kinds: dict[NamespacedName, GroupVersionKind] = field(default_factory=dict)
    """The resource kind of every valid deployable."""

    def add_valid_resource(
        self, gvk: GroupVersionKind, host: NamespacedName, deployable: NamespacedName
    ) -> None:
        """Mark a deployable of a host as valid in this round."""
        self.valid.setdefault(host, set()).add(deployable)
        self.kinds[deployable] = gvk

    def is_valid(self, host: NamespacedName, deployable: NamespacedName) -> bool:
        return deployable in self.valid.get(host, set())


class Synchronizer(ABC):
    """Abstract base class for the downstream synchronizer.

    Implementations must be safe to call concurrently from the cycles of many
    subscriptions, and must serialize calls for the same host so that applying a
    validator observes every registration made before it.
    """

    def create_validator(self, source: str) -> Validator:
        """Create a validator for a registration source."""
        return Validator(source=source)

    @abstractmethod
    def get_validated_gvk(self, gvk: GroupVersionKind) -> GroupVersionKind | None:
        """Return the supported kind matching gvk, or None when unsupported."""

    @abstractmethod
    def is_namespaced(self, gvk: GroupVersionKind) -> bool:
        """Return true if the supported kind is namespace scoped."""

    @abstractmethod
    async def register_template(
        self, host: NamespacedName, deployable: Deployable, source: str
    ) -> None:
        """Register a deployable for a host under a registration source.

        Raises:
            RegistrationError: If the deployable cannot be registered.
        """

    @abstractmethod
    async def apply_validator(self, validator: Validator) -> None:
        """Remove the deployables of the source not marked valid by the validator."""
