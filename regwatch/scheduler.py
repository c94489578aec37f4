"""
Alert Rule Scheduler — runs the periodic alert rules in their own process.

Jobs:
1. Review due (every N hours) — entities past their next review date
2. License expiring (daily) — licenses expiring within the warning window
3. Overdue violations (daily) — open violations older than the threshold

Every job is idempotent: reruns only create alerts for new conditions.
A failing job is logged and does not stop the others.
"""

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from regwatch.config import Settings
from regwatch.errors import ComplianceError
from regwatch.schemas.alert import RuleRunResult
from regwatch.services.compliance import ComplianceService

logger = structlog.get_logger(__name__)


class AlertRuleScheduler:
    """Background scheduler for the alert rules."""

    def __init__(self, service: ComplianceService, settings: Settings):
        self.service = service
        self.settings = settings
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """Register and start all scheduled jobs."""
        self.scheduler.add_job(
            self.run_review_due,
            IntervalTrigger(hours=self.settings.review_due_interval_hours),
            id="review_due",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_license_expiring,
            CronTrigger(hour=self.settings.license_expiry_cron_hour, minute=0),
            id="license_expiring",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_overdue_violations,
            CronTrigger(hour=self.settings.overdue_violation_cron_hour, minute=30),
            id="overdue_violations",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("alert_scheduler_started")

    def stop(self):
        """Gracefully stop the scheduler."""
        self.scheduler.shutdown(wait=True)
        logger.info("alert_scheduler_stopped")

    async def run_all(self) -> list[RuleRunResult]:
        """Run every rule once, in order. Used on startup."""
        results = []
        for job in (self.run_review_due, self.run_license_expiring, self.run_overdue_violations):
            result = await job()
            if result is not None:
                results.append(result)
        return results

    async def run_review_due(self) -> RuleRunResult | None:
        return await self._run("review_due", self.service.run_review_due_rule)

    async def run_license_expiring(self) -> RuleRunResult | None:
        return await self._run("license_expiring", self.service.run_license_expiring_rule)

    async def run_overdue_violations(self) -> RuleRunResult | None:
        return await self._run("overdue_violations", self.service.run_overdue_violation_rule)

    async def _run(self, name: str, rule) -> RuleRunResult | None:
        try:
            return await rule(actor=self.settings.scheduler_actor)
        except ComplianceError as e:
            logger.error("alert_rule_failed", rule=name, error_code=e.error_code, error=str(e))
        except Exception as e:
            logger.error("alert_rule_failed", rule=name, error=str(e))
        return None
