from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from polarionnode.node.errors import ParameterError, PayloadParseError, RoutingError

LIST = "list"
GET = "get"
CREATE = "create"
UPDATE = "update"
DELETE = "delete"

OPERATIONS = (LIST, GET, CREATE, UPDATE, DELETE)
ID_OPERATIONS = frozenset({GET, UPDATE, DELETE})
BODY_OPERATIONS = frozenset({CREATE, UPDATE})
QUERY_OPERATIONS = frozenset({LIST, GET})

OPERATION_METHODS: Dict[str, str] = {
    LIST: "GET",
    GET: "GET",
    CREATE: "POST",
    UPDATE: "PUT",
    DELETE: "DELETE",
}

DEFAULT_LIMIT = 50
DEFAULT_SKIP = 0
DEFAULT_PQL = "status:open"


@dataclass(frozen=True)
class ResourceRoute:
    """
    Routing entry for one Polarion resource.

    Collection operations (list/create) hit `/{resource}`; item operations
    (get/update/delete) hit `/{resource}/{id}` where the id comes from the
    `id_param` item parameter. `list_query_param` names the item parameter
    forwarded verbatim as `?query=` on list (PQL for work items).
    """

    resource: str
    display_name: str
    id_param: str = "resourceId"
    encode_id: bool = False
    list_query_param: Optional[str] = None

    @property
    def collection_path(self) -> str:
        return f"/{self.resource}"

    def item_path(self, identifier: str) -> str:
        if self.encode_id:
            # Document ids are path-like (Project/Space/Name): encode every '/'.
            identifier = quote(identifier, safe="")
        return f"{self.collection_path}/{identifier}"


def _route(resource: str, display_name: str, **kwargs: Any) -> ResourceRoute:
    return ResourceRoute(resource=resource, display_name=display_name, **kwargs)


# resource tag -> route. Order is the order shown in the resource selector.
RESOURCE_ROUTES: Dict[str, ResourceRoute] = {
    r.resource: r
    for r in (
        _route("workItems", "Work Item", id_param="workItemId", list_query_param="query"),
        _route("documents", "Document", id_param="documentId", encode_id=True),
        _route("projects", "Project", id_param="projectId"),
        _route("users", "User"),
        _route("enumerations", "Enumeration"),
        _route("jobs", "Job"),
        _route("collections", "Collection"),
        _route("plans", "Plan"),
        _route("pages", "Page"),
        _route("testRuns", "Test Run"),
        _route("testRecords", "Test Record"),
        _route("testSteps", "Test Step"),
        _route("approvals", "Approval"),
    )
}

SIMPLE_RESOURCES = tuple(
    name for name, r in RESOURCE_ROUTES.items() if r.id_param == "resourceId"
)


@dataclass
class RequestSpec:
    """HTTP request derived from one (resource, operation, item) triple."""

    method: str
    path: str
    query_params: Dict[str, Any] = field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None


def parse_payload(raw: Any) -> Dict[str, Any]:
    """
    Decode the `data` parameter of a create/update item.

    Accepts JSON text or an already-decoded mapping; the result must be a
    JSON object.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise PayloadParseError(f"Data is not valid UTF-8: {exc}") from exc
    if not isinstance(raw, str):
        raise PayloadParseError(
            f"Data must be JSON text or an object, got {type(raw).__name__}."
        )
    if not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PayloadParseError(f"Data is not valid JSON: {exc}") from exc
    if not isinstance(decoded, dict):
        raise PayloadParseError(
            f"Data must be a JSON object, got {type(decoded).__name__}."
        )
    return decoded


def _require_identifier(route: ResourceRoute, params: Mapping[str, Any]) -> str:
    value = params.get(route.id_param)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ParameterError(
            f'Parameter "{route.id_param}" is required for {route.display_name}.'
        )
    return str(value)


def _as_int(name: str, value: Any, default: int) -> int:
    # Falsy values (None, "", 0) fall back to the default.
    if not value:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ParameterError(f'Option "{name}" must be a number, got {value!r}.') from exc


def resolve_request(
    resource: str, operation: str, params: Mapping[str, Any]
) -> RequestSpec:
    """
    Map (resource, operation, item parameters) to a RequestSpec.

    Raises:
        RoutingError:      unknown resource or operation.
        PayloadParseError: create/update `data` is not a JSON object.
        ParameterError:    a required identifier or numeric option is invalid.
    """
    route = RESOURCE_ROUTES.get(resource)
    if route is None:
        raise RoutingError(f'Resource "{resource}" routing error.')
    if operation not in OPERATION_METHODS:
        raise RoutingError(
            f'Operation "{operation}" is not supported for resource "{resource}".'
        )

    spec = RequestSpec(method=OPERATION_METHODS[operation], path=route.collection_path)

    if operation in BODY_OPERATIONS:
        spec.body = parse_payload(params.get("data"))

    if operation in ID_OPERATIONS:
        spec.path = route.item_path(_require_identifier(route, params))
    elif operation == LIST and route.list_query_param:
        query = params.get(route.list_query_param)
        spec.query_params["query"] = DEFAULT_PQL if query is None else query

    if operation in QUERY_OPERATIONS:
        options = params.get("options") or {}
        if not isinstance(options, Mapping):
            raise ParameterError(
                f'Parameter "options" must be an object, got {type(options).__name__}.'
            )
        fields = options.get("fields")
        if fields:
            if isinstance(fields, (list, tuple)):
                fields = ",".join(str(f) for f in fields)
            spec.query_params["fields"] = fields
        if operation == LIST:
            spec.query_params["limit"] = _as_int("limit", options.get("limit"), DEFAULT_LIMIT)
            spec.query_params["skip"] = _as_int("skip", options.get("skip"), DEFAULT_SKIP)

    return spec
