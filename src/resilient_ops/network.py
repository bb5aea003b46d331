from __future__ import annotations

import httpx
import structlog

from resilient_ops.logging import StructuredLogger, log_error, log_info

DEFAULT_CONNECTIVITY_URL = "https://www.google.com"

_logger: StructuredLogger = structlog.stdlib.get_logger(__name__)


async def check_network_connectivity(
    client: httpx.AsyncClient,
    *,
    url: str = DEFAULT_CONNECTIVITY_URL,
    timeout: float = 10.0,
) -> bool:
    """Return true when ``url`` answers an HTTP request within ``timeout``.

    Any response counts as reachable; only transport errors fail the check.
    """
    try:
        await client.get(url, timeout=timeout)
    except httpx.RequestError as exc:
        log_error(_logger, "network.unreachable", url=url, error=str(exc))
        return False
    log_info(_logger, "network.reachable", url=url)
    return True
