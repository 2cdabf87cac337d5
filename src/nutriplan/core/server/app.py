"""Nutrition plan server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- create_http_app() for serving, with the daily metrics job tied to the app lifespan
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets

from fastmcp import FastMCP
from starlette.applications import Starlette

from nutriplan.core.audit.logger import AuditLogger
from nutriplan.core.config.settings import get_settings
from nutriplan.core.server.auth import TokenSigner
from nutriplan.core.server.routes import PlanApi
from nutriplan.core.storage.acknowledgments import AcknowledgmentStore
from nutriplan.core.storage.database import PlanDatabase
from nutriplan.core.storage.encryption import ProfileEncryptor
from nutriplan.core.storage.repository import PlanRepository
from nutriplan.domains.nutrition.gate import Clock, MetricsAcknowledgmentGate, utc_now
from nutriplan.domains.nutrition.jobs.daily_metrics import MetricsComputationJob
from nutriplan.domains.nutrition.services.metrics_service import MetricsService
from nutriplan.domains.nutrition.services.plan_service import PlanService
from nutriplan.domains.nutrition.tools.audit_tools import register_audit_tools
from nutriplan.domains.nutrition.tools.plan_tools import register_plan_tools

logger = logging.getLogger(__name__)


def create_app(
    *,
    database_override: PlanDatabase | None = None,
    encryptor_override: ProfileEncryptor | None = None,
    signer_override: TokenSigner | None = None,
    clock: Clock = utc_now,
) -> FastMCP:
    """Create and configure the nutrition plan server."""
    server, _ = _build_server(
        database_override=database_override,
        encryptor_override=encryptor_override,
        signer_override=signer_override,
        clock=clock,
    )
    return server


def _build_server(
    *,
    database_override: PlanDatabase | None,
    encryptor_override: ProfileEncryptor | None,
    signer_override: TokenSigner | None,
    clock: Clock,
) -> tuple[FastMCP, MetricsComputationJob]:
    """Build the server and return it with its metrics job.

    Steps:
    1. Creates the FastMCP server instance
    2. Initializes encrypted storage, acknowledgments and the audit trail
    3. Wires the gate, metrics job and services
    4. Registers MCP tools and the HTTP routes
    """
    settings = get_settings()

    server = FastMCP(
        "NutriPlan",
        instructions=(
            "Nutrition plan server. Computes daily calorie, protein and water "
            "targets from health metrics. Plans can only be generated after the "
            "user has acknowledged today's BMI/BMR/TDEE."
        ),
    )

    # --- Storage ---
    if encryptor_override is not None:
        encryptor = encryptor_override
    elif settings.encryption_key:
        encryptor = ProfileEncryptor(settings.encryption_key)
    else:
        encryptor = ProfileEncryptor(ProfileEncryptor.generate_key())
        logger.warning(
            "No ENCRYPTION_KEY configured; using an ephemeral key and an in-memory "
            "database. Data will not survive a restart."
        )

    if database_override is not None:
        database = database_override
    else:
        database = PlanDatabase(settings.db_path if settings.encryption_key else ":memory:")
    database.initialize()
    logger.info("Plan store ready (schema v%d)", database.get_schema_version())

    repository = PlanRepository(database, encryptor)
    acknowledgments = AcknowledgmentStore(database)
    audit_logger = AuditLogger(database)

    # --- Domain services ---
    gate = MetricsAcknowledgmentGate(repository, acknowledgments, audit_logger, clock=clock)
    metrics_job = MetricsComputationJob(repository, audit_logger, clock=clock)
    metrics_service = MetricsService(repository, acknowledgments, audit_logger, clock=clock)
    plan_service = PlanService(
        repository,
        gate,
        audit_logger,
        metrics_job=metrics_job,
        clock=clock,
        recent_plan_window_days=settings.recent_plan_window_days,
        calorie_threshold=settings.significant_calorie_delta,
        protein_threshold=settings.significant_protein_delta,
    )

    # --- Auth ---
    if signer_override is not None:
        signer = signer_override
    else:
        secret = settings.auth_secret
        if not secret:
            secret = secrets.token_urlsafe(32)
            logger.warning("No AUTH_SECRET configured; issued tokens expire with this process")
        signer = TokenSigner(secret, ttl_seconds=settings.auth_token_ttl_seconds)

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "NutriPlan",
            "version": "0.1.0",
            "schema_version": database.get_schema_version(),
            "users": len(repository.list_user_ids()),
            "snapshots_stored": repository.count_snapshots(),
            "acknowledgments_stored": acknowledgments.count(),
        }

    register_plan_tools(
        server,
        metrics_service=metrics_service,
        plan_service=plan_service,
        repository=repository,
        metrics_job=metrics_job,
        audit_logger=audit_logger,
    )
    register_audit_tools(server, audit_logger)
    logger.info("Plan and audit tools registered")

    # --- Register HTTP routes ---
    api = PlanApi(metrics_service, plan_service, repository, signer)
    for path, methods, handler in api.route_table():
        server.custom_route(path, methods=methods)(handler)
    logger.info("HTTP routes registered")

    return server, metrics_job


def create_http_app(
    *,
    metrics_job_interval_seconds: float | None = None,
    database_override: PlanDatabase | None = None,
    encryptor_override: ProfileEncryptor | None = None,
    signer_override: TokenSigner | None = None,
    clock: Clock = utc_now,
) -> Starlette:
    """Create the ASGI app served by ``nutriplan-server``.

    Same server as :func:`create_app`, plus the daily metrics job running
    every ``metrics_job_interval_seconds`` for the lifetime of the app.
    An interval of 0 leaves scheduling to an outside caller of
    :meth:`MetricsComputationJob.run_once`.
    """
    if metrics_job_interval_seconds is None:
        metrics_job_interval_seconds = get_settings().metrics_job_interval_seconds

    server, metrics_job = _build_server(
        database_override=database_override,
        encryptor_override=encryptor_override,
        signer_override=signer_override,
        clock=clock,
    )
    app = server.http_app()
    if metrics_job_interval_seconds <= 0:
        logger.info("Metrics job loop disabled")
        return app

    mcp_lifespan = app.router.lifespan_context
    interval = metrics_job_interval_seconds

    @contextlib.asynccontextmanager
    async def lifespan(asgi_app: Starlette):
        async with mcp_lifespan(asgi_app) as state:
            task = asyncio.create_task(metrics_job.run_forever(interval))
            logger.info("Metrics job loop started (every %.0fs)", interval)
            try:
                yield state
            finally:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                logger.info("Metrics job loop stopped")

    app.router.lifespan_context = lifespan
    return app


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
