"""Lightweight async HTTP server for on-demand job runs.

Runs alongside the APScheduler engine in the same asyncio event loop so an
external cron or an operator can trigger a job and read back its summary.
Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from cohort_scheduler.config import settings
from cohort_scheduler.recovery.models import RecordAlreadyRecoveredError, RecoveryStatusError

if TYPE_CHECKING:
    from cohort_scheduler.recovery.store import RecoveryStore
    from cohort_scheduler.recovery.tracker import RecoveryTracker
    from cohort_scheduler.scheduler.engine import SchedulerEngine

logger = logging.getLogger(__name__)

ENGINE_KEY = web.AppKey("engine", object)
TRACKER_KEY = web.AppKey("tracker", object)
RECOVERY_STORE_KEY = web.AppKey("recovery_store", object)


def _authorized(request: web.Request) -> bool:
    secret = request.headers.get("X-Trigger-Secret", "")
    return bool(settings.trigger_secret) and secret == settings.trigger_secret


async def _health(request: web.Request) -> web.Response:
    """GET /health — basic liveness check."""
    engine: SchedulerEngine = request.app[ENGINE_KEY]
    return web.json_response(
        {"status": "ok", "scheduler_running": engine.running, "jobs": engine.job_names}
    )


async def _handle_run_job(request: web.Request) -> web.Response:
    """POST /jobs/<name> — run one job now and return its summary."""
    name = request.match_info["name"]
    if not _authorized(request):
        logger.warning("Trigger rejected: invalid secret (job=%s)", name)
        return web.json_response({"error": "unauthorized"}, status=401)

    engine: SchedulerEngine = request.app[ENGINE_KEY]
    if name not in engine.job_names:
        logger.warning("Trigger 404: job %s is not enabled", name)
        return web.json_response({"error": "unknown job"}, status=404)

    logger.info("Manual trigger: job=%s", name)
    summary = await engine.run_now(name)
    status = 500 if "error" in summary else 200
    return web.json_response(summary, status=status)


async def _handle_message_status(request: web.Request) -> web.Response:
    """POST /recovery/<record_id>/status — record whether the message went out."""
    if not _authorized(request):
        return web.json_response({"error": "unauthorized"}, status=401)

    record_id = request.match_info["record_id"]
    try:
        payload: dict[str, Any] = await request.json()
    except Exception:
        return web.json_response({"error": "invalid JSON"}, status=400)
    if not isinstance(payload, dict) or "status" not in payload:
        return web.json_response({"error": "status is required"}, status=400)

    tracker: RecoveryTracker = request.app[TRACKER_KEY]
    try:
        record = await tracker.record_message_outcome(
            record_id,
            str(payload["status"]),
            message_content=payload.get("message_content"),
        )
    except RecordAlreadyRecoveredError as exc:
        return web.json_response({"error": str(exc)}, status=409)
    except RecoveryStatusError as exc:
        return web.json_response({"error": str(exc)}, status=400)

    if record is None:
        return web.json_response({"error": "recovery record not found"}, status=404)
    return web.json_response(record.to_dict())


async def _handle_recovery_stats(request: web.Request) -> web.Response:
    """GET /recovery/stats — recovery rate across every cycle so far."""
    if not _authorized(request):
        return web.json_response({"error": "unauthorized"}, status=401)

    store: RecoveryStore = request.app[RECOVERY_STORE_KEY]
    stats = await store.recovery_stats()
    stats["recent_checks"] = [s.to_dict() for s in await store.list_summaries(limit=7)]
    return web.json_response(stats)


def _create_web_app(
    engine: SchedulerEngine,
    tracker: RecoveryTracker,
    recovery_store: RecoveryStore,
) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[ENGINE_KEY] = engine
    app[TRACKER_KEY] = tracker
    app[RECOVERY_STORE_KEY] = recovery_store
    app.router.add_get("/health", _health)
    app.router.add_post("/jobs/{name}", _handle_run_job)
    app.router.add_post("/recovery/{record_id}/status", _handle_message_status)
    app.router.add_get("/recovery/stats", _handle_recovery_stats)
    return app


class TriggerServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        engine: SchedulerEngine,
        tracker: RecoveryTracker,
        recovery_store: RecoveryStore,
        port: int | None = None,
    ) -> None:
        self.port = port or settings.trigger_port
        self._engine = engine
        self._tracker = tracker
        self._recovery_store = recovery_store
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for trigger requests."""
        if not settings.trigger_secret:
            logger.warning("TRIGGER_SECRET empty, trigger server disabled")
            return

        app = _create_web_app(self._engine, self._tracker, self._recovery_store)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        logger.info(
            "Trigger server listening on port %d (jobs: %s)",
            self.port,
            self._engine.job_names or ["none enabled"],
        )

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Trigger server stopped")
