from __future__ import annotations
import base64
import logging
from typing import Any, Dict, Optional

from opentelemetry import trace

from polarionnode.credentials.models import (
    AUTH_BASIC,
    AUTH_TOKEN,
    CREDENTIAL_TYPE,
    PolarionCredential,
)
from polarionnode.node.context import ExecutionContext, HttpRequestOptions
from polarionnode.node.errors import ConfigurationError, RequestFailure, TransportError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("polarionnode.request")


def build_auth_header(credential: PolarionCredential) -> str:
    """
    Authorization header value for the stored credential.

    Basic: base64("username:password"). Token: "Bearer {token}".
    """
    if credential.authentication == AUTH_BASIC:
        raw = f"{credential.username}:{credential.password}".encode("utf-8")
        return f"Basic {base64.b64encode(raw).decode('ascii')}"
    if credential.authentication == AUTH_TOKEN:
        return f"Bearer {credential.token}"
    raise ConfigurationError(
        "Invalid authentication method specified in credentials.",
        description=f'Unsupported value "{credential.authentication}"; expected "basic" or "token".',
    )


async def polarion_api_request(
    ctx: ExecutionContext,
    method: str,
    path: str,
    body: Optional[Dict[str, Any]] = None,
    qs: Optional[Dict[str, Any]] = None,
    uri: Optional[str] = None,
) -> Any:
    """
    Issue one authenticated request against the Polarion REST API.

    `uri`, when given, replaces `path` as the request target.

    Raises:
        ConfigurationError: credentials missing or auth method unsupported.
        RequestFailure:     transport/HTTP failure; carries the upstream body.
    """
    credential = await ctx.get_credentials(CREDENTIAL_TYPE)
    if credential is None:
        raise ConfigurationError("Polarion credentials are not set.")
    if not credential.base_url:
        raise ConfigurationError("Polarion credentials have no base URL.")

    options = HttpRequestOptions(
        method=method,
        base_url=credential.base_url,
        url=uri or path,
        body=body,
        qs=dict(qs or {}),
        headers={
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": build_auth_header(credential),
        },
    )

    with tracer.start_as_current_span(
        "polarion.request",
        attributes={"http.method": method, "http.url": options.full_url},
    ) as span:
        try:
            logger.debug("Executing Polarion API Request: %s %s", method, options.url)
            return await ctx.http_request(options)
        except TransportError as exc:
            span.set_attribute("http.status_code", exc.status or 0)
            logger.error(
                "Polarion API Error: %s",
                exc.response_body if exc.response_body is not None else exc,
            )
            raise RequestFailure(
                f"Polarion API request failed: {exc}",
                response=exc.response_body,
                status=exc.status,
            ) from exc
