from __future__ import annotations
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from polarionnode.node.context import HttpRequestOptions
from polarionnode.node.errors import TransportError

logger = logging.getLogger(__name__)


class AiohttpTransport:
    """
    Host HTTP transport backed by a shared aiohttp.ClientSession.

    One session per transport instance (connection pooling is the session's
    job). Non-2xx responses and connection failures are raised as
    TransportError with the decoded upstream body attached.
    """

    def __init__(
        self,
        timeout_s: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout_s = timeout_s
        self._session = session
        self._own_session = session is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_s)
            )
        return self._session

    async def close(self) -> None:
        if self._own_session and self._session and not self._session.closed:
            await self._session.close()

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    async def request(self, options: HttpRequestOptions) -> Any:
        """Perform one request. Returns decoded JSON, raw text, or None for an empty body."""
        session = await self._get_session()
        kwargs: Dict[str, Any] = {
            "params": _stringify_params(options.qs),
            "headers": options.headers,
        }
        if options.body is not None:
            kwargs["json"] = options.body

        try:
            async with session.request(options.method, options.full_url, **kwargs) as resp:
                raw = await resp.read()
                payload = _decode(raw.decode(resp.charset or "utf-8", errors="replace"))
                if resp.status >= 400:
                    raise TransportError(
                        f"{resp.status} {resp.reason or ''}".strip(),
                        status=resp.status,
                        response_body=payload,
                    )
                return payload
        except aiohttp.ClientError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        except TimeoutError as exc:
            raise TransportError(f"Request timed out after {self._timeout_s}s") from exc


def _decode(text: str) -> Any:
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _stringify_params(qs: Dict[str, Any]) -> Dict[str, str]:
    # yarl only accepts str/int/float query values; booleans go lowercase.
    out: Dict[str, str] = {}
    for key, value in qs.items():
        if value is None:
            continue
        if isinstance(value, bool):
            out[key] = "true" if value else "false"
        else:
            out[key] = str(value)
    return out
