"""Predicates used to select which resources of a repository are subscribed.

Every predicate treats an absent filter as matching everything.
"""

import logging
from typing import Any

from .manifest import LabelSelector, PackageFilter, Subscription
from .unstructured import get_annotations, get_labels, get_name

__all__ = [
    "match_name",
    "match_labels",
    "match_annotations",
    "check_filters",
]

_LOGGER = logging.getLogger(__name__)

OP_IN = "In"
OP_NOT_IN = "NotIn"
OP_EXISTS = "Exists"
OP_DOES_NOT_EXIST = "DoesNotExist"


def match_name(package: str | None, name: str) -> bool:
    """Return true if no package name is declared or it equals the name."""
    if not package:
        return True
    return package == name


def match_labels(selector: LabelSelector | None, labels: dict[str, str]) -> bool:
    """Return true if the labels satisfy the label selector."""
    if selector is None:
        return True
    for key, value in (selector.match_labels or {}).items():
        if labels.get(key) != value:
            return False
    for requirement in selector.match_expressions or ():
        values = requirement.values or []
        if requirement.operator == OP_IN:
            if requirement.key not in labels or labels[requirement.key] not in values:
                return False
        elif requirement.operator == OP_NOT_IN:
            if requirement.key in labels and labels[requirement.key] in values:
                return False
        elif requirement.operator == OP_EXISTS:
            if requirement.key not in labels:
                return False
        elif requirement.operator == OP_DOES_NOT_EXIST:
            if requirement.key in labels:
                return False
        else:
            _LOGGER.warning(
                "Unsupported label selector operator %s", requirement.operator
            )
            return False
    return True


def match_annotations(
    annotations: dict[str, str] | None, actual: dict[str, str]
) -> bool:
    """Return true if every required annotation is present with an equal value."""
    if annotations is None:
        return True
    for key, value in annotations.items():
        if actual.get(key) != value:
            _LOGGER.debug(
                "Annotation filter does not match: %s=%s (was %s)",
                key,
                value,
                actual.get(key),
            )
            return False
    return True


def check_filters(subscription: Subscription, doc: dict[str, Any]) -> str | None:
    """Check a resource against the subscription filters.

    Returns a message describing the first failing predicate or None when the
    resource passes all of them.
    """
    name = get_name(doc)
    if not match_name(subscription.package, name):
        return f"Name does not match, skipping: {subscription.package}|{name}"
    package_filter = subscription.package_filter or PackageFilter()
    if not match_labels(package_filter.label_selector, get_labels(doc)):
        return f"Failed to pass label check on resource {name}"
    if not match_annotations(package_filter.annotations, get_annotations(doc)):
        return f"Failed to pass annotation check on resource {name}"
    return None
