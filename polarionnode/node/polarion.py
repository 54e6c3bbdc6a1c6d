from __future__ import annotations
import logging
from typing import Any, Dict, List

from opentelemetry import trace

from polarionnode.node.context import ExecutionContext
from polarionnode.node.description import NODE_DESCRIPTION
from polarionnode.node.errors import ConfigurationError, PolarionNodeError
from polarionnode.node.request import polarion_api_request
from polarionnode.node.routing import resolve_request

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("polarionnode.node")


def normalize_response(response: Any) -> List[Dict[str, Any]]:
    """
    Flatten a decoded Polarion response into output records.

    {"data": [...]} and bare arrays yield one record per element; any other
    object yields itself. An empty body (e.g. 204 on delete) yields
    {"success": True}.
    """
    if response is None or response == "":
        return [{"success": True}]
    if isinstance(response, dict) and isinstance(response.get("data"), list):
        elements = response["data"]
    elif isinstance(response, list):
        elements = response
    else:
        return [_as_record(response)]
    return [_as_record(e) for e in elements]


def _as_record(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {"value": value}


class PolarionNode:
    """
    Polarion workflow node.

    Reads `resource` and `operation` once (from item 0), then dispatches
    every input item in order. Item-level failures become
    {"error", "itemIndex"} records when the context has continue-on-fail
    enabled; otherwise the first failure aborts the batch. Configuration
    errors always abort.
    """

    description = NODE_DESCRIPTION

    async def execute(self, ctx: ExecutionContext) -> List[Dict[str, Any]]:
        items = ctx.get_input_data()
        resource = ctx.get_node_parameter("resource", 0, "workItems")
        operation = ctx.get_node_parameter("operation", 0, "list")
        results: List[Dict[str, Any]] = []

        with tracer.start_as_current_span(
            "node.polarion.execute",
            attributes={
                "polarion.resource": resource,
                "polarion.operation": operation,
                "polarion.items": len(items),
            },
        ) as span:
            for index in range(len(items)):
                try:
                    results.extend(await self.dispatch(ctx, resource, operation, index))
                except ConfigurationError as exc:
                    exc.item_index = index
                    span.set_attribute("polarion.failed_item", index)
                    raise
                except Exception as exc:
                    if ctx.continue_on_fail():
                        logger.warning("Item %d failed (continuing): %s", index, exc)
                        results.append({"error": str(exc), "itemIndex": index})
                        continue
                    if isinstance(exc, PolarionNodeError):
                        exc.item_index = index
                    span.set_attribute("polarion.failed_item", index)
                    raise
            span.set_attribute("polarion.records", len(results))

        return results

    async def dispatch(
        self, ctx: ExecutionContext, resource: str, operation: str, index: int
    ) -> List[Dict[str, Any]]:
        """Resolve, send and normalize the request for input item `index`."""
        with tracer.start_as_current_span(
            "node.polarion.dispatch",
            attributes={
                "polarion.resource": resource,
                "polarion.operation": operation,
                "polarion.item_index": index,
            },
        ):
            spec = resolve_request(resource, operation, ctx.item_parameters(index))
            response = await polarion_api_request(
                ctx, spec.method, spec.path, spec.body, spec.query_params
            )
            return normalize_response(response)
