"""
Builds the aiohttp session file transfers share.
"""

import logging

import aiohttp

from hfmd import __version__

log = logging.getLogger(__name__)

USER_AGENT = f"hfmd/{__version__}"


def create_transfer_session(
    max_workers: int | None, headers: dict[str, str] | None = None
) -> aiohttp.ClientSession:
    """
    Creates a ClientSession tuned for long-running file transfers.

    Args:
        max_workers: Concurrency cap of the job; None lifts the connector limit.
        headers: Extra default headers, e.g. authorization.
    """
    limit = max_workers or 0
    connector = aiohttp.TCPConnector(
        limit=limit * 2,  # Total connections, 0 = unlimited
        limit_per_host=limit,
        ttl_dns_cache=600,  # 10 minutes
        keepalive_timeout=30,
        enable_cleanup_closed=True,
    )
    # No total timeout: multi-gigabyte bodies legitimately stream for hours
    timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
    session = aiohttp.ClientSession(
        connector=connector,
        timeout=timeout,
        auto_decompress=False,
        headers={
            "User-Agent": USER_AGENT,
            # Byte ranges and Content-Length must describe the stored bytes
            "Accept-Encoding": "identity",
            **(headers or {}),
        },
    )
    log.debug(f"Created transfer session with limit_per_host={limit or 'unlimited'}")
    return session
