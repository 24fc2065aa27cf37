"""Exceptions related to gitops-subscriber."""

__all__ = [
    "SubscriberException",
    "InputException",
    "FetchError",
    "CredentialError",
    "ClassificationError",
    "ChartParseError",
    "FilterParseError",
    "UnsupportedKindError",
    "OverrideError",
    "RegistrationError",
    "StatusReportError",
    "ConflictError",
    "ObjectNotFoundError",
    "CycleTimeoutError",
]


class SubscriberException(Exception):
    """Generic base exception used for this library."""


class InputException(SubscriberException):
    """Raised when the input objects or files are not formatted as expected."""


class FetchError(SubscriberException):
    """Raised when the repository could not be fetched."""


class CredentialError(FetchError):
    """Raised when credentials for a repository could not be resolved."""


class ClassificationError(SubscriberException):
    """Raised when the fetched repository tree could not be traversed."""


class ChartParseError(SubscriberException):
    """Raised when a chart manifest could not be parsed into chart metadata."""


class FilterParseError(SubscriberException):
    """Raised when a version or a version constraint is malformed."""


class UnsupportedKindError(SubscriberException):
    """Raised when a resource kind is not accepted by the synchronizer."""

    def __init__(self, gvk: str) -> None:
        super().__init__(f"Resource {gvk} is not supported")
        self.gvk = gvk


class OverrideError(SubscriberException):
    """Raised when an override fragment could not be applied to a document."""


class RegistrationError(SubscriberException):
    """Raised when the synchronizer refuses to register a deployable."""


class StatusReportError(SubscriberException):
    """Raised when the subscription status could not be reported."""


class ConflictError(StatusReportError):
    """Raised when a status update was made against a stale object."""

    def __init__(self, resource_name: str, message: str | None = None) -> None:
        super().__init__(
            f"Conflict updating {resource_name}: {message or 'object has been modified'}"
        )
        self.resource_name = resource_name


class ObjectNotFoundError(SubscriberException):
    """Raised when an object is not found by the client."""


class CycleTimeoutError(SubscriberException):
    """Raised when a reconciliation cycle exceeds its deadline."""
