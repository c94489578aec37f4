"""
Scheduler Entry Point — runs in a separate process.

Usage:
    python -m regwatch.scheduler_main

This does NOT run a web server. It runs the APScheduler
background loop for the alert rules.
"""

import asyncio
import signal

import structlog

from regwatch.clock import SystemClock
from regwatch.config import settings
from regwatch.db.engine import build_engine, build_session_factory, init_db
from regwatch.logging_config import configure_logging
from regwatch.scheduler import AlertRuleScheduler
from regwatch.services.compliance import ComplianceService

logger = structlog.get_logger(__name__)


async def main():
    """Initialize and run the scheduler."""
    configure_logging(settings)
    logger.info("scheduler_starting", version=settings.app_version)

    # Database
    engine = build_engine(settings)
    await init_db(engine, settings)
    session_factory = build_session_factory(engine)

    service = ComplianceService(session_factory, clock=SystemClock(), settings=settings)
    scheduler = AlertRuleScheduler(service, settings)

    # Run every rule once on startup
    logger.info("running_initial_rules")
    await scheduler.run_all()

    scheduler.start()

    # Graceful shutdown handling
    stop_event = asyncio.Event()

    def _handle_signal(signum, frame):
        logger.info("shutdown_signal_received", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info("scheduler_running", msg="Waiting for jobs... Ctrl+C to stop.")

    await stop_event.wait()

    scheduler.stop()
    await engine.dispose()
    logger.info("scheduler_shutdown_complete")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
