"""
Keep-alive ping.

Some hosting platforms idle a process out unless something calls it;
a third-party monitor can be poked once at startup.
"""

import httpx

from streamgate.utils.logger import get_logger

logger = get_logger(__name__)

KEEPALIVE_TIMEOUT_SECONDS = 10.0


async def ping_keepalive(url: str, transport: httpx.AsyncBaseTransport | None = None) -> bool:
    """
    Call the keep-alive URL once.

    Args:
        url: URL to GET.
        transport: Optional httpx transport (used by tests).

    Returns:
        True if the service answered with a success status.
    """
    try:
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.get(url, timeout=KEEPALIVE_TIMEOUT_SECONDS)
            response.raise_for_status()
            logger.info(f"Keep-alive ping succeeded ({response.status_code})")
            return True

    except httpx.RequestError as e:
        logger.warning(f"Failed to reach keep-alive service: {e}")

    except httpx.HTTPStatusError as e:
        logger.warning(
            f"Keep-alive service rejected ping: {e.response.status_code} - "
            f"{e.response.text[:200]}"
        )

    return False
