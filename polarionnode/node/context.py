from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol
from urllib.parse import urlsplit

from polarionnode.credentials.models import PolarionCredential

_MISSING = object()


@dataclass
class HttpRequestOptions:
    """A single outbound HTTP call, as handed to the host transport."""

    method: str
    base_url: str
    url: str
    body: Optional[Dict[str, Any]] = None
    qs: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def full_url(self) -> str:
        if urlsplit(self.url).scheme:
            return self.url
        return self.base_url.rstrip("/") + "/" + self.url.lstrip("/")


class Transport(Protocol):
    async def request(self, options: HttpRequestOptions) -> Any: ...


CredentialLookup = Callable[[str], Awaitable[Optional[PolarionCredential]]]


class ExecutionContext:
    """
    Host-side state for one node execution (one batch of input items).

    Parameters resolve per item: an entry in item_parameters[index] wins over
    the node-level `parameters`. Nested keys use dotted names
    ("options.limit") as well as plain ones ("options").
    """

    def __init__(
        self,
        items: List[Dict[str, Any]],
        parameters: Optional[Dict[str, Any]] = None,
        item_parameters: Optional[List[Dict[str, Any]]] = None,
        credentials: Optional[Mapping[str, PolarionCredential]] = None,
        transport: Optional[Transport] = None,
        continue_on_fail: bool = False,
        credential_lookup: Optional[CredentialLookup] = None,
    ) -> None:
        self._items = items
        self._parameters = parameters or {}
        self._item_parameters = item_parameters or []
        self._credentials = dict(credentials or {})
        self._credential_lookup = credential_lookup
        self._transport = transport
        self._continue_on_fail = continue_on_fail

    # ------------------------------------------------------------------
    # Items and parameters
    # ------------------------------------------------------------------

    def get_input_data(self) -> List[Dict[str, Any]]:
        return self._items

    def get_node_parameter(self, name: str, index: int, default: Any = _MISSING) -> Any:
        """
        Resolve parameter `name` for item `index`.

        Raises KeyError when the parameter is unset and no default is given.
        """
        overrides = (
            self._item_parameters[index] if index < len(self._item_parameters) else {}
        )
        for source in (overrides, self._parameters):
            value = _lookup(source, name)
            if value is not _MISSING:
                return value
        if default is _MISSING:
            raise KeyError(f'Could not get parameter "{name}" for item {index}')
        return default

    def item_parameters(self, index: int) -> Dict[str, Any]:
        """All parameters visible to item `index` (node-level merged with overrides)."""
        merged = dict(self._parameters)
        if index < len(self._item_parameters):
            for key, value in self._item_parameters[index].items():
                if isinstance(value, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **value}
                else:
                    merged[key] = value
        return merged

    def continue_on_fail(self) -> bool:
        return self._continue_on_fail

    # ------------------------------------------------------------------
    # Host services
    # ------------------------------------------------------------------

    async def get_credentials(self, type_name: str) -> Optional[PolarionCredential]:
        if type_name in self._credentials:
            return self._credentials[type_name]
        if self._credential_lookup is not None:
            return await self._credential_lookup(type_name)
        return None

    async def http_request(self, options: HttpRequestOptions) -> Any:
        if self._transport is None:
            raise RuntimeError("No HTTP transport bound to this execution context")
        return await self._transport.request(options)


def _lookup(source: Mapping[str, Any], name: str) -> Any:
    if name in source:
        return source[name]
    node: Any = source
    for part in name.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node
