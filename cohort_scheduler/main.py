"""Cohort scheduler entry point."""

import argparse
import asyncio
import json
import logging

from cohort_scheduler.config import ALL_JOBS, settings
from cohort_scheduler.notifications.in_app_channel import InAppChannel
from cohort_scheduler.notifications.router import NotificationRouter
from cohort_scheduler.notifications.webhook_channel import WebhookChannel
from cohort_scheduler.recovery.store import RecoveryStore
from cohort_scheduler.recovery.tracker import RecoveryTracker
from cohort_scheduler.scheduler.engine import SchedulerEngine
from cohort_scheduler.scheduler.jobs import build_jobs, job_schedules
from cohort_scheduler.timeline.store import TimelineStore
from cohort_scheduler.trigger.server import TriggerServer

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def build_router() -> NotificationRouter:
    """Register the configured channels on the shared router."""
    router = NotificationRouter.get()
    router.register_channel(InAppChannel())
    if settings.notification_webhook_url:
        router.register_channel(
            WebhookChannel(
                settings.notification_webhook_url,
                secret=settings.notification_webhook_secret,
                timeout=settings.dispatch_timeout_seconds,
            )
        )
    router.set_default_channel(settings.default_notification_channel)
    return router


async def run_once(name: str) -> dict:
    """Run a single job and return its summary."""
    jobs = build_jobs(
        TimelineStore.get(), RecoveryStore.get(), build_router(), enabled=[name]
    )
    engine = SchedulerEngine(jobs, job_schedules())
    return await engine.run_now(name)


async def serve() -> None:
    """Run the scheduler and trigger server until cancelled."""
    timeline_store = TimelineStore.get()
    recovery_store = RecoveryStore.get()
    router = build_router()

    engine = SchedulerEngine(
        build_jobs(timeline_store, recovery_store, router), job_schedules()
    )
    server = TriggerServer(engine, RecoveryTracker(recovery_store), recovery_store)

    await engine.start(run_immediately=True)
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()
        await engine.stop()


def main() -> None:
    """Start the scheduler, or run one job and print its summary."""
    parser = argparse.ArgumentParser(prog="cohort-scheduler")
    parser.add_argument(
        "--run-once",
        choices=ALL_JOBS,
        help="run a single job, print its JSON summary and exit",
    )
    args = parser.parse_args()

    if args.run_once:
        summary = asyncio.run(run_once(args.run_once))
        print(json.dumps(summary, indent=2))
        return

    logger.info("Starting cohort scheduler (jobs: %s)", settings.enabled_jobs)
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
