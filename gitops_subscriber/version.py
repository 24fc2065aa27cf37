"""Semantic version range parsing and matching.

A range is a list of alternatives separated by `||`. Each alternative is a
whitespace separated list of comparators that must all match, for example
`>=1.2.0 <2.0.0 || >=3.0.0`. A comparator is an optional operator (`>`, `>=`,
`<`, `<=`, `=`, `==`, `!=` or `!`) followed by a version. A version without an
operator must match exactly. A trailing `x` component is a wildcard, so `1.2.x`
is the same as `>=1.2.0 <1.3.0`.

Versions follow Semantic Versioning 2.0, so `1.2.3-SNAPSHOT` is a valid
version that sorts below `1.2.3` and above `1.2.2`.
"""

from collections.abc import Callable
from dataclasses import dataclass
import logging
import operator
import re

from semver import Version

from .exceptions import FilterParseError

__all__ = [
    "VersionRange",
    "parse_version",
    "parse_range",
    "satisfies",
]

_LOGGER = logging.getLogger(__name__)

_OPERATORS: dict[str, Callable[[Version, Version], bool]] = {
    "": operator.eq,
    "=": operator.eq,
    "==": operator.eq,
    "!": operator.ne,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}
_BARE_OPERATORS = set(_OPERATORS) - {""}
_COMPARATOR_RE = re.compile(r"^(>=|<=|!=|==|>|<|=|!)?(.+)$")
_WILDCARDS = {"x", "X", "*"}


def parse_version(value: str) -> Version:
    """Parse a single version, raising FilterParseError when malformed."""
    if not isinstance(value, str):
        raise FilterParseError(f"Invalid version '{value}': not a string")
    try:
        return Version.parse(value.strip())
    except ValueError as err:
        raise FilterParseError(f"Invalid version '{value}': {err}") from err


@dataclass(frozen=True)
class Comparator:
    """A single operator and version pair."""

    op: str
    version: Version

    def __call__(self, version: Version) -> bool:
        return _OPERATORS[self.op](version, self.version)

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


@dataclass(frozen=True)
class VersionRange:
    """A parsed version range expression."""

    expression: str
    alternatives: tuple[tuple[Comparator, ...], ...]

    def __call__(self, version: Version | str) -> bool:
        """Return true if the version satisfies any alternative of the range."""
        if isinstance(version, str):
            version = parse_version(version)
        return any(
            all(comparator(version) for comparator in alternative)
            for alternative in self.alternatives
        )

    def __str__(self) -> str:
        return self.expression


def _expand_wildcard(op: str, value: str) -> list[Comparator]:
    """Expand a version with a trailing wildcard into plain comparators."""
    parts = value.split(".")
    fixed = []
    for part in parts:
        if part in _WILDCARDS:
            break
        fixed.append(part)
    if not fixed or len(fixed) == len(parts) or len(fixed) > 2:
        raise FilterParseError(f"Invalid wildcard version '{value}'")
    if any(part not in _WILDCARDS for part in parts[len(fixed) :]):
        raise FilterParseError(f"Invalid wildcard version '{value}'")
    numbers = [int(part) if part.isdigit() else -1 for part in fixed]
    if -1 in numbers:
        raise FilterParseError(f"Invalid wildcard version '{value}'")
    lower = Version(*(numbers + [0] * (3 - len(numbers))))
    bumped = numbers[:-1] + [numbers[-1] + 1]
    upper = Version(*(bumped + [0] * (3 - len(bumped))))
    if op in ("", "=", "=="):
        return [Comparator(">=", lower), Comparator("<", upper)]
    if op in (">=",):
        return [Comparator(">=", lower)]
    if op in (">", "<="):
        return [Comparator(">=" if op == ">" else "<", upper)]
    if op == "<":
        return [Comparator("<", lower)]
    raise FilterParseError(f"Operator '{op}' does not support wildcard '{value}'")


def _parse_comparators(alternative: str) -> tuple[Comparator, ...]:
    tokens = alternative.split()
    merged: list[str] = []
    for token in tokens:
        # Allow whitespace between an operator and its version e.g. `>= 1.2.0`
        if merged and merged[-1] in _BARE_OPERATORS:
            merged[-1] += token
        else:
            merged.append(token)
    if not merged or merged[-1] in _BARE_OPERATORS:
        raise FilterParseError(f"Invalid version range '{alternative}'")
    comparators: list[Comparator] = []
    for token in merged:
        if not (match := _COMPARATOR_RE.match(token)):
            raise FilterParseError(f"Invalid version comparator '{token}'")
        op, value = match.group(1) or "", match.group(2)
        core = re.split(r"[-+]", value, maxsplit=1)[0]
        if any(part in _WILDCARDS for part in core.split(".")):
            comparators.extend(_expand_wildcard(op, value))
            continue
        comparators.append(Comparator(op, parse_version(value)))
    return tuple(comparators)


def parse_range(expression: str) -> VersionRange:
    """Parse a version range expression, raising FilterParseError when malformed."""
    if not expression or not expression.strip():
        raise FilterParseError("Empty version range")
    alternatives = tuple(
        _parse_comparators(alternative) for alternative in expression.split("||")
    )
    return VersionRange(expression=expression.strip(), alternatives=alternatives)


def satisfies(version: str, expression: str) -> bool:
    """Return true if the version string satisfies the range expression."""
    return parse_range(expression)(parse_version(version))
