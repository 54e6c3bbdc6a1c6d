from __future__ import annotations
from typing import Any, Optional


class PolarionNodeError(Exception):
    """Base for every error raised while executing the Polarion node."""

    def __init__(self, message: str, description: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.description = description
        # Set by the node when an error escapes the per-item loop.
        self.item_index: Optional[int] = None


class ConfigurationError(PolarionNodeError):
    """Missing/invalid credential or unsupported auth method. Always fatal."""


class PayloadParseError(PolarionNodeError):
    """The `data` parameter of a create/update item is not a JSON object."""


class RoutingError(PolarionNodeError):
    """Unknown resource or operation tag."""


class ParameterError(PolarionNodeError):
    """A required per-item parameter (e.g. an identifier) is missing."""


class RequestFailure(PolarionNodeError):
    """
    Upstream non-2xx response or transport-level failure.

    `response` holds the decoded upstream error body (if any) and `status`
    the upstream HTTP status, both kept for diagnostics.
    """

    def __init__(
        self,
        message: str,
        response: Any = None,
        status: Optional[int] = None,
        description: Optional[str] = None,
    ) -> None:
        super().__init__(message, description)
        self.response = response
        self.status = status


class TransportError(Exception):
    """
    Raised by the host transport. Never escapes the request helper: it is
    always converted to RequestFailure.
    """

    def __init__(
        self, message: str, status: Optional[int] = None, response_body: Any = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.response_body = response_body

