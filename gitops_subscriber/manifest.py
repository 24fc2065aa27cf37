"""Representation of the objects exchanged by the subscription engine.

Subscriptions and channels are the desired state read from the cluster. Release
descriptors and deployables are produced by a reconciliation cycle and handed to
the synchronizer. All objects may be parsed from, and rendered back to, raw
kubernetes style documents.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
import json
import logging
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.codecs.yaml import yaml_decode, yaml_encode
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "Subscription",
    "SubscriptionStatus",
    "PackageStatus",
    "PackagePhase",
    "PackageFilter",
    "PackageOverride",
    "LabelSelector",
    "Channel",
    "HelmReleaseDescriptor",
    "Deployable",
    "GroupVersionKind",
    "NamespacedName",
]

_LOGGER = logging.getLogger(__name__)


API_GROUP = "apps.gitops.dev"
API_VERSION = f"{API_GROUP}/v1alpha1"
SUBSCRIPTION_KIND = "Subscription"
CHANNEL_KIND = "Channel"
DEPLOYABLE_KIND = "Deployable"
HELM_RELEASE_KIND = "HelmRelease"
SECRET_KIND = "Secret"
CONFIG_MAP_KIND = "ConfigMap"

# Marks a deployable as generated from a local source rather than a hub object
ANNOTATION_LOCAL = f"{API_GROUP}/is-local-deployable"

SOURCE_TYPE_GIT = "git"
TILLER_VERSION_ANNOTATION = "tillerVersion"


def now_timestamp() -> str:
    """Return the current time as an RFC 3339 timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True, order=True)
class NamespacedName:
    """Identifier for a namespaced kubernetes object."""

    namespace: str | None
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


@dataclass(frozen=True, order=True)
class GroupVersionKind:
    """Identifier for a kind of kubernetes resource."""

    group: str
    version: str
    kind: str

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> "GroupVersionKind":
        """Build from an apiVersion string such as `apps/v1` or `v1`."""
        group, _, version = api_version.rpartition("/")
        return cls(group=group, version=version, kind=kind)

    @property
    def api_version(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    def __str__(self) -> str:
        return f"{self.api_version}, Kind={self.kind}"


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    @classmethod
    def parse_yaml(cls, content: str) -> "BaseManifest":
        """Parse a serialized manifest."""
        return yaml_decode(content, cls)

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml_encode(self, self.__class__)  # type: ignore[return-value]

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


def _parse_metadata(cls: type, doc: dict[str, Any]) -> tuple[dict[str, Any], str, str]:
    """Return the metadata, name and namespace of a namespaced object."""
    if not (metadata := doc.get("metadata")):
        raise InputException(f"Invalid {cls.__name__} missing metadata: {doc}")
    if not (name := metadata.get("name")):
        raise InputException(f"Invalid {cls.__name__} missing metadata.name: {doc}")
    if not (namespace := metadata.get("namespace")):
        raise InputException(
            f"Invalid {cls.__name__} missing metadata.namespace: {doc}"
        )
    return metadata, name, namespace


@dataclass
class ObjectReference(BaseManifest):
    """A reference to another object, optionally in another namespace."""

    name: str
    """The name of the object."""

    namespace: str | None = None
    """The namespace of the object, defaults to the referencing object namespace."""


@dataclass
class LabelSelectorRequirement(BaseManifest):
    """A single set based label requirement."""

    key: str
    """The label key the requirement applies to."""

    operator: str
    """One of In, NotIn, Exists and DoesNotExist."""

    values: list[str] | None = None
    """Values for the In and NotIn operators."""


@dataclass
class LabelSelector(BaseManifest):
    """A kubernetes label selector."""

    match_labels: dict[str, str] | None = field(
        metadata=field_options(alias="matchLabels"), default=None
    )
    """Labels that must all be present with equal values."""

    match_expressions: list[LabelSelectorRequirement] | None = field(
        metadata=field_options(alias="matchExpressions"), default=None
    )
    """Set based requirements that must all be satisfied."""


@dataclass
class PackageFilter(BaseManifest):
    """Criteria used to select which packages in a repository are subscribed."""

    label_selector: LabelSelector | None = field(
        metadata=field_options(alias="labelSelector"), default=None
    )
    """Label selector a resource must satisfy."""

    annotations: dict[str, str] | None = None
    """Annotations a resource must carry with equal values."""

    version: str | None = None
    """Semantic version range a chart version must satisfy e.g. `>=1.2.0 <2.0.0`."""

    tiller_version: str | None = field(
        metadata=field_options(alias="tillerVersion"), default=None
    )
    """Platform version checked against the tillerVersion declared by a chart."""

    filter_ref: ObjectReference | None = field(
        metadata=field_options(alias="filterRef"), default=None
    )
    """A ConfigMap in the subscription namespace whose `path` key narrows the repo."""

    @property
    def tiller_constraint(self) -> str | None:
        """The tiller version filter, also accepted as an annotation."""
        if self.tiller_version:
            return self.tiller_version
        if self.annotations:
            return self.annotations.get(TILLER_VERSION_ANNOTATION)
        return None


@dataclass
class PackageOverride(BaseManifest):
    """Override fragments applied to a single package."""

    package_name: str = field(metadata=field_options(alias="packageName"))
    """The package (chart name or resource name) the overrides apply to."""

    overrides: list[Any] = field(
        metadata=field_options(alias="packageOverrides"), default_factory=list
    )
    """Ordered raw override fragments, later fragments win."""


class PackagePhase(StrEnum):
    """Subscription phase of a single package."""

    SUBSCRIBED = "Subscribed"
    FAILED = "Failed"


@dataclass
class PackageStatus(BaseManifest):
    """Status of a single package within a subscription."""

    phase: PackagePhase
    message: str | None = None
    last_update_time: str | None = field(
        metadata=field_options(alias="lastUpdateTime"), default=None
    )
    resource_status: dict[str, Any] | None = field(
        metadata=field_options(alias="resourceStatus"), default=None
    )

    def __str__(self) -> str:
        if self.message:
            return f"{self.phase}: {self.message}"
        return str(self.phase)


@dataclass
class SubscriptionStatus(BaseManifest):
    """Status reported on a subscription."""

    phase: str | None = None
    message: str | None = None
    last_update_time: str | None = field(
        metadata=field_options(alias="lastUpdateTime"), default=None
    )
    packages: dict[str, PackageStatus] = field(default_factory=dict)


@dataclass
class Subscription(BaseManifest):
    """The desired state of a subscription to a channel."""

    kind: ClassVar[str] = SUBSCRIPTION_KIND
    """The kind of the object."""

    name: str
    """The name of the Subscription."""

    namespace: str
    """The namespace the packages are deployed into."""

    package: str | None = None
    """Exact package name to subscribe to."""

    package_filter: PackageFilter | None = field(
        metadata=field_options(alias="packageFilter"), default=None
    )
    """Filters applied to resources and charts."""

    package_overrides: list[PackageOverride] = field(
        metadata=field_options(alias="packageOverrides"), default_factory=list
    )
    """Per package override fragments."""

    uid: str | None = None
    """The uid of the object, used for owner references."""

    api_version: str = field(
        metadata=field_options(alias="apiVersion"), default=API_VERSION
    )
    """The apiVersion of the object."""

    resource_version: str | None = field(
        metadata=field_options(alias="resourceVersion"), default=None
    )
    """Opaque version used to detect concurrent status writes."""

    status: SubscriptionStatus = field(default_factory=SubscriptionStatus)
    """The reported status of the subscription."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Subscription":
        """Parse a Subscription from a kubernetes resource object."""
        metadata, name, namespace = _parse_metadata(cls, doc)
        spec = doc.get("spec") or {}
        package_filter: PackageFilter | None = None
        if (filter_dict := spec.get("packageFilter")) is not None:
            package_filter = PackageFilter.from_dict(filter_dict)
        package_overrides = [
            PackageOverride.from_dict(subdoc)
            for subdoc in spec.get("packageOverrides") or ()
        ]
        status = SubscriptionStatus()
        if status_dict := doc.get("status"):
            status = SubscriptionStatus.from_dict(status_dict)
        return cls(
            name=name,
            namespace=namespace,
            package=spec.get("package") or None,
            package_filter=package_filter,
            package_overrides=package_overrides,
            uid=metadata.get("uid"),
            api_version=doc.get("apiVersion", API_VERSION),
            resource_version=metadata.get("resourceVersion"),
            status=status,
        )

    def to_doc(self) -> dict[str, Any]:
        """Render the Subscription as a kubernetes resource object."""
        metadata: dict[str, Any] = {"name": self.name, "namespace": self.namespace}
        if self.uid:
            metadata["uid"] = self.uid
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        spec: dict[str, Any] = {}
        if self.package:
            spec["package"] = self.package
        if self.package_filter:
            spec["packageFilter"] = self.package_filter.to_dict()
        if self.package_overrides:
            spec["packageOverrides"] = [
                override.to_dict() for override in self.package_overrides
            ]
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": spec,
            "status": self.status.to_dict(),
        }

    @property
    def namespaced_name(self) -> NamespacedName:
        return NamespacedName(self.namespace, self.name)

    def overrides_for(self, package_name: str) -> list[Any]:
        """Return the override fragments declared for the package."""
        for package_override in self.package_overrides:
            if package_override.package_name == package_name:
                _LOGGER.debug("Overrides for package %s found", package_name)
                return list(package_override.overrides)
        return []


@dataclass
class Channel(BaseManifest):
    """A source channel backed by a git repository."""

    kind: ClassVar[str] = CHANNEL_KIND
    """The kind of the object."""

    name: str
    """The name of the Channel."""

    namespace: str
    """The namespace of the Channel."""

    path_name: str = field(metadata=field_options(alias="pathname"))
    """The URL of the git repository."""

    secret_ref: ObjectReference | None = field(
        metadata=field_options(alias="secretRef"), default=None
    )
    """Secret holding the `user` and `password` used to fetch the repository."""

    config_map_ref: ObjectReference | None = field(
        metadata=field_options(alias="configMapRef"), default=None
    )
    """ConfigMap passed along to chart releases."""

    branch: str | None = None
    """The branch to fetch, the remote default branch when not set."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Channel":
        """Parse a Channel from a kubernetes resource object."""
        _, name, namespace = _parse_metadata(cls, doc)
        if not (spec := doc.get("spec")):
            raise InputException(f"Invalid {cls.__name__} missing spec: {doc}")
        if not (path_name := spec.get("pathname")):
            raise InputException(f"Invalid {cls.__name__} missing spec.pathname: {doc}")
        secret_ref: ObjectReference | None = None
        if secret_ref_dict := spec.get("secretRef"):
            secret_ref = ObjectReference.from_dict(secret_ref_dict)
        config_map_ref: ObjectReference | None = None
        if config_map_ref_dict := spec.get("configMapRef"):
            config_map_ref = ObjectReference.from_dict(config_map_ref_dict)
        return cls(
            name=name,
            namespace=namespace,
            path_name=path_name,
            secret_ref=secret_ref,
            config_map_ref=config_map_ref,
            branch=spec.get("branch"),
        )

    @property
    def namespaced_name(self) -> NamespacedName:
        return NamespacedName(self.namespace, self.name)


@dataclass
class GitChartSource(BaseManifest):
    """Location of a chart inside a git repository."""

    urls: list[str]
    """Repository URLs the chart may be fetched from."""

    chart_path: str = field(metadata=field_options(alias="chartPath"))
    """Path of the chart directory relative to the repository root."""

    branch: str | None = None
    """The branch the chart was found on."""


@dataclass
class ReleaseSource(BaseManifest):
    """Where the release chart is fetched from."""

    git: GitChartSource
    source_type: str = field(
        metadata=field_options(alias="type"), default=SOURCE_TYPE_GIT
    )


@dataclass
class HelmReleaseSpec(BaseManifest):
    """Desired state of a chart release."""

    source: ReleaseSource
    chart_name: str = field(metadata=field_options(alias="chartName"))
    release_name: str = field(metadata=field_options(alias="releaseName"))
    version: str
    config_map_ref: ObjectReference | None = field(
        metadata=field_options(alias="configMapRef"), default=None
    )
    secret_ref: ObjectReference | None = field(
        metadata=field_options(alias="secretRef"), default=None
    )
    values: Any = None
    """Chart values, typically supplied by overrides."""


@dataclass
class OwnerReference(BaseManifest):
    """Reference to the object that owns a release."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    kind: str
    name: str
    uid: str | None = None


@dataclass
class HelmReleaseDescriptor(BaseManifest):
    """A chart release custom resource generated for a chart package."""

    kind: ClassVar[str] = HELM_RELEASE_KIND
    """The kind of the object."""

    name: str
    """The name of the release object."""

    namespace: str
    """The namespace of the release object."""

    spec: HelmReleaseSpec
    """The release spec."""

    owner_references: list[OwnerReference] = field(
        metadata=field_options(alias="ownerReferences"), default_factory=list
    )
    """Objects owning the release."""

    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "HelmReleaseDescriptor":
        """Parse a release from a kubernetes resource object."""
        metadata, name, namespace = _parse_metadata(cls, doc)
        if not isinstance(spec := doc.get("spec"), dict) or not spec:
            raise InputException(f"Invalid {cls.__name__} missing spec: {doc}")
        try:
            release_spec = HelmReleaseSpec.from_dict(spec)
            owner_references = [
                OwnerReference.from_dict(ref)
                for ref in metadata.get("ownerReferences") or ()
            ]
        except (ValueError, TypeError, LookupError) as err:
            raise InputException(f"Invalid {cls.__name__} spec {spec}: {err}") from err
        return cls(
            name=name,
            namespace=namespace,
            spec=release_spec,
            owner_references=owner_references,
            labels=metadata.get("labels"),
            annotations=metadata.get("annotations"),
        )

    def to_doc(self) -> dict[str, Any]:
        """Render the release as a kubernetes resource object."""
        metadata: dict[str, Any] = {"name": self.name, "namespace": self.namespace}
        if self.owner_references:
            metadata["ownerReferences"] = [
                ref.to_dict() for ref in self.owner_references
            ]
        if self.labels:
            metadata["labels"] = dict(self.labels)
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        return {
            "apiVersion": API_VERSION,
            "kind": self.kind,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
        }


@dataclass
class Deployable(BaseManifest):
    """The unit handed to the synchronizer, wrapping a single target object."""

    kind: ClassVar[str] = DEPLOYABLE_KIND
    """The kind of the object."""

    name: str
    """Deterministic name, stable across cycles for the same artifact."""

    namespace: str
    """The namespace of the deployable."""

    template: dict[str, Any]
    """The target object."""

    annotations: dict[str, str] = field(default_factory=dict)
    """Annotations on the deployable."""

    @property
    def key(self) -> NamespacedName:
        return NamespacedName(self.namespace, self.name)

    @property
    def raw(self) -> bytes:
        """The serialized template payload."""
        return json.dumps(
            self.template, sort_keys=True, separators=(",", ":")
        ).encode("utf-8")

    @property
    def is_local(self) -> bool:
        return self.annotations.get(ANNOTATION_LOCAL) == "true"

    def to_doc(self) -> dict[str, Any]:
        """Render the deployable as a kubernetes resource object."""
        return {
            "apiVersion": API_VERSION,
            "kind": self.kind,
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "annotations": dict(self.annotations),
            },
            "spec": {"template": json.loads(self.raw)},
        }
