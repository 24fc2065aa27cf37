"""Library for applying subscription overrides to generated documents.

An override fragment is a mapping with a dotted `path` and a `value`, or a YAML
or JSON string holding one:

```yaml
path: spec.values
value:
  replicaCount: 2
```

Fragments are applied in order. A mapping value is deep merged into an
existing mapping at the path, any other value replaces what is there, so later
fragments win on conflicting paths. Documents are never modified in place.
"""

import copy
import logging
from typing import Any

import yaml

from .exceptions import InputException, OverrideError
from .manifest import HelmReleaseDescriptor

__all__ = [
    "apply_overrides",
    "override_release",
]

_LOGGER = logging.getLogger(__name__)


def _parse_fragment(fragment: Any) -> tuple[list[str], Any]:
    """Return the path components and value of an override fragment."""
    if isinstance(fragment, (str, bytes)):
        try:
            fragment = yaml.safe_load(fragment)
        except yaml.YAMLError as err:
            raise OverrideError(f"Unable to parse override fragment: {err}") from err
    if not isinstance(fragment, dict):
        raise OverrideError(f"Override fragment is not a mapping: {fragment}")
    if "path" not in fragment or "value" not in fragment:
        raise OverrideError(f"Override fragment missing path or value: {fragment}")
    if not isinstance(path := fragment["path"], str) or not path:
        raise OverrideError(f"Override fragment has invalid path: {fragment}")
    fields = path.split(".")
    if not all(fields):
        raise OverrideError(f"Override fragment has invalid path '{path}'")
    return fields, fragment["value"]


def _merge(base: Any, value: Any) -> Any:
    """Deep merge value into base returning a new object."""
    if not isinstance(base, dict) or not isinstance(value, dict):
        return copy.deepcopy(value)
    result = dict(base)
    for key, subvalue in value.items():
        result[key] = _merge(base[key], subvalue) if key in base else copy.deepcopy(subvalue)
    return result


def apply_overrides(doc: dict[str, Any], fragments: list[Any]) -> dict[str, Any]:
    """Apply the override fragments in order, returning a new document."""
    result = copy.deepcopy(doc)
    for fragment in fragments:
        fields, value = _parse_fragment(fragment)
        target = result
        for key in fields[:-1]:
            if (child := target.get(key)) is None:
                child = {}
                target[key] = child
            elif not isinstance(child, dict):
                raise OverrideError(
                    f"Override path {'.'.join(fields)} crosses non-mapping field '{key}'"
                )
            target = child
        last = fields[-1]
        target[last] = _merge(target[last], value) if last in target else copy.deepcopy(value)
        _LOGGER.debug("Applied override at %s", ".".join(fields))
    return result


def override_release(
    release: HelmReleaseDescriptor, fragments: list[Any]
) -> HelmReleaseDescriptor:
    """Apply override fragments to a chart release descriptor."""
    if not fragments:
        return release
    doc = apply_overrides(release.to_doc(), fragments)
    try:
        return HelmReleaseDescriptor.parse_doc(doc)
    except InputException as err:
        raise OverrideError(
            f"Override of release {release.namespace}/{release.name} produced an invalid release: {err}"
        ) from err
