"""CareTrack server entry point: ``python -m caretrack.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from caretrack.core.config.settings import get_settings
from caretrack.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the CareTrack MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.caretrack_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger = logging.getLogger(__name__)
    if not settings.caretrack_allow_insecure_bind and not _is_loopback_host(settings.caretrack_host):
        raise RuntimeError(
            "Refusing to bind CareTrack to a non-loopback host without an auth layer. "
            "Set CARETRACK_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting CareTrack server on %s:%d",
        settings.caretrack_host,
        settings.caretrack_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.caretrack_host,
        port=settings.caretrack_port,
    )


if __name__ == "__main__":
    run()
