"""HTTP transport shared by all drivers.

One request in, one response out, always with a bounded timeout. Network
failures and timeouts become ``TransientNetworkError``; status codes are
left for the caller to classify.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

from drivers.errors import SchemaMismatchError, TransientNetworkError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass
class TransportRequest:
    """A single outbound HTTP call.

    At most one of ``json``, ``form``, ``multipart`` and ``body`` is used,
    in that order of precedence.
    """
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Optional[Dict[str, Any]] = None
    json: Optional[Any] = None
    form: Optional[Dict[str, Any]] = None
    multipart: Optional[Dict[str, Any]] = None
    body: Optional[str] = None
    timeout: Optional[float] = None

    @property
    def is_read(self) -> bool:
        return self.method.upper() in ("GET", "HEAD")


@dataclass
class TransportResponse:
    """Status, headers and decoded text of a response."""
    status: int
    text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Parse the body as JSON; an empty body is ``{}``.

        Raises:
            SchemaMismatchError: Body is not JSON
        """
        if not self.text.strip():
            return {}
        try:
            return json.loads(self.text)
        except json.JSONDecodeError as e:
            raise SchemaMismatchError(
                f"Response is not valid JSON: {e.msg}",
                self.status,
                self.text,
            )


class Transport(ABC):
    """Executes TransportRequests."""

    @abstractmethod
    async def send(self, request: TransportRequest) -> TransportResponse:
        """Send a request and return the raw response.

        Raises:
            TransientNetworkError: Timeout or connection failure
        """
        pass


def _stringify(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    if not params:
        return None
    out = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        out[key] = str(value)
    return out


class HttpTransport(Transport):
    """aiohttp-backed transport.

    Usage:
        transport = HttpTransport(default_timeout=30)
        response = await transport.send(TransportRequest("GET", url))

    A session can be injected for connection reuse; otherwise each call
    opens and closes its own.
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.default_timeout = default_timeout
        self._session = session

    def _body_kwargs(self, request: TransportRequest) -> Dict[str, Any]:
        if request.json is not None:
            return {"json": request.json}
        if request.form is not None:
            return {"data": {k: str(v) for k, v in request.form.items() if v is not None}}
        if request.multipart is not None:
            writer = aiohttp.MultipartWriter("form-data")
            for name, value in request.multipart.items():
                part = writer.append(str(value))
                part.set_content_disposition("form-data", name=name)
            return {"data": writer}
        if request.body is not None:
            return {"data": request.body.encode("utf-8")}
        return {}

    async def _execute(self, session: aiohttp.ClientSession, request: TransportRequest, timeout) -> TransportResponse:
        async with session.request(
            request.method.upper(),
            request.url,
            headers=request.headers,
            params=_stringify(request.params),
            timeout=timeout,
            **self._body_kwargs(request),
        ) as response:
            text = await response.text()
            return TransportResponse(
                status=response.status,
                text=text,
                headers=dict(response.headers),
                url=str(response.url),
            )

    async def send(self, request: TransportRequest) -> TransportResponse:
        seconds = request.timeout or self.default_timeout
        timeout = aiohttp.ClientTimeout(total=seconds)
        logger.debug(f"{request.method.upper()} {request.url}")
        try:
            if self._session is not None:
                return await self._execute(self._session, request, timeout)
            async with aiohttp.ClientSession() as session:
                return await self._execute(session, request, timeout)
        except asyncio.TimeoutError:
            raise TransientNetworkError(f"Request to {request.url} timed out after {seconds:g}s")
        except aiohttp.ClientError as e:
            raise TransientNetworkError(f"Connection to {request.url} failed: {e}")
