"""Shared pytest configuration for polarionnode tests."""
from typing import Any, Callable, List, Optional, Union

import pytest

from polarionnode.credentials.models import PolarionCredential
from polarionnode.node.context import HttpRequestOptions
from polarionnode.node.errors import TransportError


class RecordingTransport:
    """
    In-memory host transport: records every request and replays queued
    responses. A queued TransportError (or a callable raising one) is raised
    instead of returned.
    """

    def __init__(self) -> None:
        self.requests: List[HttpRequestOptions] = []
        self._responses: List[Union[Any, Exception, Callable]] = []
        self.default: Any = {}

    def queue(self, *responses: Any) -> "RecordingTransport":
        self._responses.extend(responses)
        return self

    async def request(self, options: HttpRequestOptions) -> Any:
        self.requests.append(options)
        response = self._responses.pop(0) if self._responses else self.default
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(options)
        return response

    @property
    def last(self) -> Optional[HttpRequestOptions]:
        return self.requests[-1] if self.requests else None


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def basic_credential() -> PolarionCredential:
    return PolarionCredential(
        base_url="https://alm.example.com/polarion/api/rest/v1",
        authentication="basic",
        username="admin",
        password="s3cret",
    )


@pytest.fixture
def token_credential() -> PolarionCredential:
    return PolarionCredential(
        base_url="https://alm.example.com/polarion/api/rest/v1",
        authentication="token",
        token="pat-123",
    )


@pytest.fixture
def upstream_404() -> TransportError:
    return TransportError(
        "404 Not Found",
        status=404,
        response_body={"errors": [{"status": "404", "detail": "Work item not found"}]},
    )
