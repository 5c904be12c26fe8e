"""Error taxonomy for the metadata graph.

Every failure surfaced by the graph is one of three kinds. The kind travels
with the exception so callers can branch on ``error.kind`` instead of
catching a family of unrelated exception types.
"""

from enum import Enum
from typing import Any, ClassVar


class ErrorKind(str, Enum):
    """The three error kinds reported to callers."""

    INVALID_PARAMETER = "invalid_parameter"  # Caller error, never retried
    NOT_AUTHORIZED = "not_authorized"  # Permission denied, never retried
    PROPERTY_SERVER = "property_server"  # Repository failure or broken invariant


class MetadataGraphError(Exception):
    """Base exception for metadata graph errors."""

    kind: ClassVar[ErrorKind]

    def __init__(
        self,
        message: str,
        guid: str | None = None,
        parameter_name: str | None = None,
        progress: Any | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.guid = guid
        self.parameter_name = parameter_name
        # Partial result of a multi-step operation that failed part way
        self.progress = progress

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for transport layers."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "guid": self.guid,
            "parameterName": self.parameter_name,
        }


class InvalidParameterError(MetadataGraphError):
    """Missing, malformed or unknown GUID, type, or property value."""

    kind = ErrorKind.INVALID_PARAMETER


class NotAuthorizedError(MetadataGraphError):
    """The caller may not perform the operation on this type."""

    kind = ErrorKind.NOT_AUTHORIZED

    def __init__(self, message: str, user_id: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.user_id = user_id


class PropertyServerError(MetadataGraphError):
    """The repository failed or was inconsistent mid-operation."""

    kind = ErrorKind.PROPERTY_SERVER
