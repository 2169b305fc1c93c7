"""HTTP exchange with external processors.

A processor receives the full Abnormal as a JSON POST body and answers with
the (possibly enriched) Abnormal.  Any failure along the way -- connection,
timeout, non-2xx status, undecodable body -- is reported as ProcessorError
so the caller can move on to the next candidate.
"""

from __future__ import annotations

import json

import httpx
import structlog

from kubediag.models.abnormal import Abnormal
from kubediag.models.processor import Processor

_log = structlog.get_logger(component="chain.client")


class ProcessorError(Exception):
    """A processor could not produce a usable response."""

    def __init__(self, processor: Processor, detail: str) -> None:
        super().__init__(f"processor {processor.key} failed: {detail}")
        self.processor = processor
        self.detail = detail


def format_url(scheme: str, host: str, port: int | str, path: str) -> str:
    """Build ``scheme://host:port/path`` from a processor descriptor."""
    if not path.startswith("/"):
        path = "/" + path
    url = httpx.URL(scheme=scheme.lower(), host=host, port=int(port), path=path)
    return str(url)


class ProcessorClient:
    """Sends Abnormals to processors over one shared connection pool.

    The pool skips TLS verification (processors typically serve self-signed
    certificates on ephemeral ports), keeps no idle connections and ignores
    proxy environment variables.  Each call carries the processor's own
    timeout.

    Args:
        transport: Optional transport override, e.g. ``httpx.MockTransport``.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(
            transport=transport,
            verify=False,
            trust_env=False,
            limits=httpx.Limits(max_keepalive_connections=0),
            headers={"Connection": "close"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def dispatch(self, processor: Processor, abnormal: Abnormal) -> Abnormal:
        """POST *abnormal* to *processor* and return the decoded response.

        Raises:
            ProcessorError: on any transport, status or decode failure.
        """
        try:
            url = format_url(processor.spec.scheme, processor.spec.ip, processor.spec.port, processor.spec.path)
        except (httpx.InvalidURL, ValueError) as exc:
            raise ProcessorError(processor, f"invalid endpoint: {exc}") from exc
        try:
            payload = abnormal.to_dict()
        except ValueError as exc:
            raise ProcessorError(processor, f"unable to encode abnormal: {exc}") from exc

        try:
            response = await self._client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=processor.timeout,
            )
        except httpx.TimeoutException as exc:
            raise ProcessorError(processor, f"request to {url} timed out after {processor.timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise ProcessorError(processor, f"request to {url} failed: {exc}") from exc

        if not response.is_success:
            raise ProcessorError(
                processor,
                f"status code {response.status_code} from {url}: {response.text[:200]}",
            )

        try:
            result = Abnormal.from_dict(response.json())
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ProcessorError(processor, f"invalid response body from {url}: {exc}") from exc

        _log.debug("processor_responded", processor=str(processor.key), url=url, status_code=response.status_code)
        return result
