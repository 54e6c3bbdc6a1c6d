from __future__ import annotations
from typing import Any, Dict, List

from polarionnode.credentials.models import CREDENTIAL_TYPE
from polarionnode.node.routing import (
    BODY_OPERATIONS,
    CREATE,
    DEFAULT_LIMIT,
    DEFAULT_PQL,
    DEFAULT_SKIP,
    DELETE,
    GET,
    ID_OPERATIONS,
    LIST,
    OPERATIONS,
    QUERY_OPERATIONS,
    RESOURCE_ROUTES,
    SIMPLE_RESOURCES,
    UPDATE,
)

_ID_FIELD_TEXT: Dict[str, Dict[str, str]] = {
    "workItemId": {
        "displayName": "Work Item ID",
        "placeholder": "MyProject-123",
        "description": "The ID of the work item to retrieve, update, or delete.",
    },
    "documentId": {
        "displayName": "Document ID",
        "placeholder": "MyProject/Specification",
        "description": "The ID of the Document (often path-based: Project/Space/Name)",
    },
    "projectId": {
        "displayName": "Project ID",
        "placeholder": "MyProject",
        "description": "The ID of the Project.",
    },
    "resourceId": {
        "displayName": "Resource ID",
        "placeholder": "resource_id_123",
        "description": "The ID of the resource to Get, Update, or Delete.",
    },
}

_OPERATION_OPTIONS = [
    {"name": "List", "value": LIST, "description": "List resources (search/query)."},
    {"name": "Get", "value": GET, "description": "Retrieve a single resource by ID."},
    {"name": "Create", "value": CREATE, "description": "Create a new resource."},
    {"name": "Update", "value": UPDATE, "description": "Update an existing resource by ID."},
    {"name": "Delete", "value": DELETE, "description": "Delete a resource by ID."},
]


def _show(**conditions: List[str]) -> Dict[str, Any]:
    return {"show": conditions}


def _id_property(id_param: str, resources: List[str]) -> Dict[str, Any]:
    return {
        **_ID_FIELD_TEXT[id_param],
        "name": id_param,
        "type": "string",
        "default": "",
        "required": True,
        "displayOptions": _show(resource=resources, operation=sorted(ID_OPERATIONS)),
    }


def _build_properties() -> List[Dict[str, Any]]:
    props: List[Dict[str, Any]] = [
        {
            "displayName": "Resource",
            "name": "resource",
            "type": "options",
            "options": [
                {"name": r.display_name, "value": r.resource} for r in RESOURCE_ROUTES.values()
            ],
            "default": "workItems",
            "required": True,
            "description": "The Polarion resource to interact with.",
        },
        {
            "displayName": "Operation",
            "name": "operation",
            "type": "options",
            "options": _OPERATION_OPTIONS,
            "default": LIST,
            "required": True,
            "description": "The operation to perform.",
        },
        _id_property("workItemId", ["workItems"]),
        {
            "displayName": "PQL Query (List)",
            "name": "query",
            "type": "string",
            "default": DEFAULT_PQL,
            "description": (
                "Polarion Query Language (PQL) string to filter work items (e.g., type:Defect)"
            ),
            "displayOptions": _show(resource=["workItems"], operation=[LIST]),
        },
        _id_property("documentId", ["documents"]),
        _id_property("projectId", ["projects"]),
        _id_property("resourceId", list(SIMPLE_RESOURCES)),
        {
            "displayName": "Data (JSON)",
            "name": "data",
            "type": "json",
            "default": "{}",
            "description": (
                "JSON payload containing the data for Create or Update operations. "
                "Refer to Polarion API documentation for required schema."
            ),
            "displayOptions": _show(operation=[CREATE, UPDATE]),
        },
        {
            "displayName": "Common Options",
            "name": "options",
            "type": "collection",
            "default": {},
            "placeholder": "Add Options",
            "description": "Additional parameters for querying the API.",
            "displayOptions": _show(operation=[LIST, GET]),
            "options": [
                {
                    "displayName": "Fields to Return",
                    "name": "fields",
                    "type": "string",
                    "default": "",
                    "placeholder": "id,title,status",
                    "description": (
                        "Comma-separated list of fields to return (optimization parameter)."
                    ),
                },
                {
                    "displayName": "Limit (Maximum Results)",
                    "name": "limit",
                    "type": "number",
                    "default": DEFAULT_LIMIT,
                    "description": f"Max number of results to return (default: {DEFAULT_LIMIT}).",
                    "displayOptions": _show(operation=[LIST]),
                },
                {
                    "displayName": "Skip (Offset)",
                    "name": "skip",
                    "type": "number",
                    "default": DEFAULT_SKIP,
                    "description": "Number of results to skip (for pagination).",
                    "displayOptions": _show(operation=[LIST]),
                },
            ],
        },
    ]
    return props


NODE_DESCRIPTION: Dict[str, Any] = {
    "displayName": "Polarion",
    "name": "polarion",
    "icon": "file:polarion.svg",
    "group": ["output"],
    "version": 1,
    "subtitle": "={{$parameter.operation}}: {{$parameter.resource}}",
    "description": "Interact with the Siemens Polarion REST API",
    "credentials": [{"name": CREDENTIAL_TYPE, "required": True}],
    "defaults": {"name": "Polarion"},
    "inputs": ["main"],
    "outputs": ["main"],
    "properties": _build_properties(),
}


def _build_field_schema() -> Dict[str, Dict[str, Dict[str, List[str]]]]:
    """resource -> operation -> {"required": [...], "optional": [...]}."""
    schema: Dict[str, Dict[str, Dict[str, List[str]]]] = {}
    for name, route in RESOURCE_ROUTES.items():
        per_op: Dict[str, Dict[str, List[str]]] = {}
        for op in OPERATIONS:
            required: List[str] = []
            optional: List[str] = []
            if op in ID_OPERATIONS:
                required.append(route.id_param)
            if op == LIST and route.list_query_param:
                optional.append(route.list_query_param)
            if op in BODY_OPERATIONS:
                optional.append("data")
            if op in QUERY_OPERATIONS:
                optional.append("options.fields")
            if op == LIST:
                optional.extend(["options.limit", "options.skip"])
            per_op[op] = {"required": required, "optional": optional}
        schema[name] = per_op
    return schema


FIELD_SCHEMA = _build_field_schema()


def _matches(display_options: Dict[str, Any], resource: str, operation: str) -> bool:
    show = display_options.get("show", {})
    if "resource" in show and resource not in show["resource"]:
        return False
    if "operation" in show and operation not in show["operation"]:
        return False
    return True


def visible_properties(resource: str, operation: str) -> List[str]:
    """Names of the top-level node properties a host renders for this pair."""
    return [
        prop["name"]
        for prop in NODE_DESCRIPTION["properties"]
        if _matches(prop.get("displayOptions", {}), resource, operation)
    ]
