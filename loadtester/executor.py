"""Single timed HTTP exchange against a request template."""

import asyncio
import json
import logging
import time
from typing import Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import aiohttp

from loadtester import config
from loadtester.models import RequestTemplate, ResponseRecord, TimingBreakdown

logger = logging.getLogger(__name__)

CROSS_ORIGIN_MESSAGE = (
    "CORS Error: The request was blocked due to Cross-Origin Resource Sharing "
    "(CORS) restrictions.\n\n"
    "This is a security feature that prevents a page from making requests to "
    "different domains unless the server explicitly allows it.\n\n"
    "Possible solutions:\n"
    "1. Use an API that supports CORS or has CORS enabled\n"
    "2. Test with a local API or same-origin API\n"
    "3. Use a browser extension that disables CORS for testing "
    "(not recommended for security reasons)\n"
    "4. Set up a proxy server that adds the necessary CORS headers"
)

NO_CACHE_HEADERS = {
    "pragma": "no-cache",
    "cache-control": "no-cache, no-store, must-revalidate",
}


def _elapsed_ms(start: float, end: Optional[float] = None) -> int:
    end = time.perf_counter() if end is None else end
    return max(0, int((end - start) * 1000 + 0.5))


def cache_busted_url(url: str, now_ms: Optional[int] = None) -> str:
    """Append a timestamp query parameter so no cache answers the request.

    URLs without a scheme and host are returned unchanged.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    try:
        parts = urlsplit(url)
    except ValueError:
        parts = None
    if parts is None or not parts.scheme or not parts.netloc:
        logger.warning("Failed to parse URL for cache busting, using original URL")
        return url

    param = f"{config.CACHE_BUST_PARAM}={now_ms}"
    query = f"{parts.query}&{param}" if parts.query else param
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def with_no_cache_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Copy headers, adding no-cache directives the caller did not set."""
    enhanced = dict(headers)
    present = {name.lower() for name in enhanced}
    for name, value in NO_CACHE_HEADERS.items():
        if name not in present:
            enhanced[name] = value
    return enhanced


def is_cross_origin_rejection(exc: BaseException) -> bool:
    """Generic client errors reporting a failed fetch are cross-origin blocks."""
    generic = isinstance(exc, TypeError) or type(exc) is aiohttp.ClientError
    return generic and "failed to fetch" in str(exc).lower()


def describe_transport_error(exc: BaseException, timeout_seconds: float) -> str:
    if is_cross_origin_rejection(exc):
        return CROSS_ORIGIN_MESSAGE
    if isinstance(exc, asyncio.TimeoutError):
        return f"Request timed out after {timeout_seconds:g} seconds"
    message = str(exc) or "Unknown error occurred"
    return f"{type(exc).__name__}: {message}"


class RequestExecutor:
    """Performs one HTTP exchange per call and never raises on failure.

    A session may be injected; otherwise one is opened on first use and
    closed by ``close()`` or on leaving ``async with``.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = config.REQUEST_TIMEOUT_SECONDS,
    ):
        self._session = session
        self._owns_session = session is None
        self.timeout_seconds = timeout_seconds

    async def __aenter__(self) -> "RequestExecutor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            # Default cookie jar only sends cookies back to the origin that set them.
            self._session = aiohttp.ClientSession()
        return self._session

    async def execute(self, template: RequestTemplate) -> ResponseRecord:
        """Send the templated request and time it.

        Args:
            template: URL, method, headers and body to send.

        Returns:
            A ResponseRecord. Transport failures come back with status 0;
            undecodable bodies keep the real status with the error as body.
        """
        method = template.method.upper()
        url = cache_busted_url(template.url)
        headers = with_no_cache_headers(template.headers)
        data = template.body if method != "GET" and template.body.strip() else None

        start = time.perf_counter()
        ttfb_ms = 0
        try:
            session = self._get_session()
            logger.debug("Fetching URL: %s", url)
            async with session.request(
                method,
                url,
                headers=headers,
                data=data,
                allow_redirects=True,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                headers_at = time.perf_counter()
                ttfb_ms = _elapsed_ms(start, headers_at)
                return await self._read_response(response, headers_at, ttfb_ms)
        except Exception as exc:
            ttfb_ms = ttfb_ms or _elapsed_ms(start)
            body = describe_transport_error(exc, self.timeout_seconds)
            logger.warning("Request to %s failed: %s", template.url, body.splitlines()[0])
            return ResponseRecord(
                status=0,
                status_text="Request Failed",
                headers={},
                body=body,
                timing=TimingBreakdown(ttfb_ms=ttfb_ms),
            )

    async def _read_response(
        self,
        response: aiohttp.ClientResponse,
        headers_at: float,
        ttfb_ms: int,
    ) -> ResponseRecord:
        status_text = response.reason or ""
        content_type = response.headers.get("Content-Type", "")
        processing_ms = 0
        try:
            if "application/json" in content_type:
                # An empty body is a decode failure, not a null payload.
                data = json.loads(await response.text())
            else:
                data = await response.text()
            download_ms = _elapsed_ms(headers_at)

            processing_start = time.perf_counter()
            response_headers: Dict[str, str] = {}
            for name, value in response.headers.items():
                name = name.lower()
                if name in response_headers:
                    response_headers[name] = f"{response_headers[name]}, {value}"
                else:
                    response_headers[name] = value
            processing_ms = _elapsed_ms(processing_start)
        except Exception as exc:
            logger.warning("Error processing response: %s", exc)
            download_ms = max(0, _elapsed_ms(headers_at) - processing_ms)
            return ResponseRecord(
                status=response.status,
                status_text=status_text,
                headers={},
                body=str(exc) or "Error processing response",
                timing=TimingBreakdown(ttfb_ms=ttfb_ms, download_ms=download_ms),
            )

        logger.debug("%s %s in %sms", response.status, status_text, ttfb_ms + download_ms + processing_ms)
        return ResponseRecord(
            status=response.status,
            status_text=status_text,
            headers=response_headers,
            body=data,
            timing=TimingBreakdown(
                ttfb_ms=ttfb_ms,
                download_ms=download_ms,
                processing_ms=processing_ms,
            ),
        )
