"""Server entry point: ``python -m nutriplan.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

import uvicorn

from nutriplan.core.config.settings import get_settings
from nutriplan.core.server.app import create_http_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the plan server (MCP over Streamable HTTP, plus the HTTP routes and metrics job)."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.nutriplan_log_level.upper(), logging.INFO)
    )

    logger = logging.getLogger(__name__)
    if not settings.nutriplan_allow_insecure_bind and not _is_loopback_host(settings.nutriplan_host):
        raise RuntimeError(
            "Refusing to bind the plan server to a non-loopback host. "
            "Set NUTRIPLAN_ALLOW_INSECURE_BIND=true to override."
        )
    logger.info(
        "Starting NutriPlan server on %s:%d",
        settings.nutriplan_host,
        settings.nutriplan_port,
    )

    app = create_http_app(metrics_job_interval_seconds=settings.metrics_job_interval_seconds)
    uvicorn.run(
        app,
        host=settings.nutriplan_host,
        port=settings.nutriplan_port,
        log_level=settings.nutriplan_log_level.lower(),
    )


if __name__ == "__main__":
    run()
