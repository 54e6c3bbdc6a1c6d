from __future__ import annotations
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from pydantic import BaseModel, ConfigDict, Field

from polarionnode.credentials.models import CREDENTIAL_TYPE, POLARION_API_CREDENTIAL
from polarionnode.credentials.registry import CredentialRegistry
from polarionnode.node.context import ExecutionContext, Transport
from polarionnode.node.errors import (
    ConfigurationError,
    ParameterError,
    PayloadParseError,
    RequestFailure,
    RoutingError,
)
from polarionnode.node.polarion import PolarionNode
from polarionnode.node.transport import AiohttpTransport

logger = logging.getLogger(__name__)
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
EXECUTION_COUNT = Counter(
    "polarion_node_executions_total",
    "Total node executions processed",
    ["status", "resource", "operation"],
)
ITEM_COUNT = Counter(
    "polarion_node_items_total",
    "Output records produced, by outcome",
    ["outcome"],
)
EXECUTION_LATENCY = Histogram(
    "polarion_node_execution_latency_seconds",
    "Node execution latency",
    ["resource"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# ---------------------------------------------------------------------------
# Shared process-level resources (populated in lifespan)
# ---------------------------------------------------------------------------
_registry: Optional[CredentialRegistry] = None
_transport: Optional[Transport] = None
_node = PolarionNode()


def _init_tracing() -> None:
    """
    Initialize OpenTelemetry tracing.

    - OTEL_EXPORTER_OTLP_ENDPOINT set → OTLP HTTP exporter (Jaeger, Tempo, etc.)
    - POLARION_TRACE_CONSOLE=1 → ConsoleSpanExporter
    - Otherwise no exporter (spans are dropped)
    """
    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import (
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )

        resource = Resource.create({
            "service.name": "polarion-node-gateway",
            "service.version": "1.0.0",
        })
        provider = TracerProvider(resource=resource)

        otlp_endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "")
        if otlp_endpoint:
            try:
                from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                    OTLPSpanExporter,
                )
                provider.add_span_processor(
                    BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
                )
                logger.info("OpenTelemetry: OTLP exporter → %s", otlp_endpoint)
            except ImportError:
                logger.warning(
                    "opentelemetry-exporter-otlp-proto-http not installed; "
                    "falling back to console"
                )
                provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        elif os.environ.get("POLARION_TRACE_CONSOLE") == "1":
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
            logger.info("OpenTelemetry: ConsoleSpanExporter")

        trace.set_tracer_provider(provider)
    except Exception as exc:
        logger.warning("OpenTelemetry init failed (non-fatal): %s", exc)


# ---------------------------------------------------------------------------
# App lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    global _registry, _transport

    _init_tracing()

    credential_dir = os.environ.get("POLARION_CREDENTIAL_DIR", "configs/credentials")
    _registry = CredentialRegistry(config_dir=credential_dir)
    try:
        _registry.load_all()
    except FileNotFoundError:
        logger.warning("Credential dir not found: %s; no credentials loaded", credential_dir)

    timeout_s = float(os.environ.get("POLARION_HTTP_TIMEOUT_S", "30"))
    _transport = AiohttpTransport(timeout_s=timeout_s)

    logger.info("Polarion node gateway started. Credentials: %s", _registry.names())

    yield

    if isinstance(_transport, AiohttpTransport):
        await _transport.close()
    logger.info("Polarion node gateway shut down.")


app = FastAPI(title="Polarion Node Gateway", version="1.0.0", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class ExecuteItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payload: Dict[str, Any] = Field(default_factory=dict, alias="json")
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ExecuteRequest(BaseModel):
    credential: str
    resource: str = "workItems"
    operation: str = "list"
    parameters: Dict[str, Any] = Field(default_factory=dict)
    # An execution without input still runs once, like a manual trigger.
    items: List[ExecuteItem] = Field(default_factory=lambda: [ExecuteItem()])
    continue_on_fail: bool = False
    metadata: Optional[Dict[str, Any]] = None


def _error_response(
    status_code: int, error: str, exc: Exception, trace_id: str, **extra: Any
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": str(exc),
            "description": getattr(exc, "description", None),
            "item_index": getattr(exc, "item_index", None),
            "trace_id": trace_id,
            **extra,
        },
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.post("/v1/execute")
async def execute_node(request: ExecuteRequest):
    """
    Run the Polarion node over a batch of input items.

    Returns 400 for bad item parameters, 500 for credential/configuration
    problems, 502 when Polarion rejects a request (upstream body in `details`).
    """
    trace_id = (request.metadata or {}).get("trace_id", str(uuid.uuid4()))
    labels = {"resource": request.resource, "operation": request.operation}

    credential = _registry.get_polarion(request.credential) if _registry else None
    if credential is None:
        logger.warning("Execution requested with unknown credential %r", request.credential)

    ctx = ExecutionContext(
        items=[item.payload for item in request.items],
        parameters={
            **request.parameters,
            "resource": request.resource,
            "operation": request.operation,
        },
        item_parameters=[item.parameters for item in request.items],
        credentials={CREDENTIAL_TYPE: credential} if credential is not None else {},
        transport=_transport,
        continue_on_fail=request.continue_on_fail,
    )

    start_time = time.time()
    try:
        records = await _node.execute(ctx)
    except ConfigurationError as exc:
        EXECUTION_COUNT.labels(status="500", **labels).inc()
        return _error_response(500, "CONFIGURATION_ERROR", exc, trace_id)
    except (PayloadParseError, ParameterError, RoutingError) as exc:
        EXECUTION_COUNT.labels(status="400", **labels).inc()
        return _error_response(400, type(exc).__name__, exc, trace_id)
    except RequestFailure as exc:
        EXECUTION_COUNT.labels(status="502", **labels).inc()
        return _error_response(
            502, "UPSTREAM_REQUEST_FAILED", exc, trace_id,
            upstream_status=exc.status, details=exc.response,
        )
    except Exception as exc:
        logger.exception("Unexpected failure executing Polarion node")
        EXECUTION_COUNT.labels(status="500", **labels).inc()
        raise HTTPException(status_code=500, detail=str(exc))

    EXECUTION_LATENCY.labels(resource=request.resource).observe(time.time() - start_time)
    EXECUTION_COUNT.labels(status="200", **labels).inc()
    errors = sum(1 for r in records if "error" in r and "itemIndex" in r)
    ITEM_COUNT.labels(outcome="error").inc(errors)
    ITEM_COUNT.labels(outcome="ok").inc(len(records) - errors)

    return {"items": records, "count": len(records), "trace_id": trace_id}


@app.get("/v1/node")
async def node_description():
    return _node.description


@app.get("/v1/credentials/types")
async def credential_types():
    return [POLARION_API_CREDENTIAL]


@app.get("/v1/credentials")
async def list_credentials():
    """Stored credential names and types. Polarion settings are returned redacted."""
    if not _registry:
        return []
    out = []
    for name in _registry.names():
        stored = _registry.get(name)
        if stored is not None:
            entry: Dict[str, Any] = {"name": stored.name, "type": stored.type}
            if stored.type == CREDENTIAL_TYPE:
                entry["settings"] = stored.as_polarion().redacted()
            out.append(entry)
    return out


@app.get("/health")
async def health():
    """Kubernetes liveness/readiness probe."""
    checks: Dict[str, str] = {
        "credentials": str(_registry.count()) if _registry else "0",
        "transport": "ok" if _transport is not None else "missing",
    }
    all_ok = checks["transport"] == "ok"
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={"status": "ok" if all_ok else "degraded", "checks": checks},
    )


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8003)
