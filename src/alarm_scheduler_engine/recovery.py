import logging

from alarm_scheduler_engine import errors
from alarm_scheduler_engine.repository import AlarmRepository
from alarm_scheduler_engine.scheduler import SchedulerCore


class RecoveryCoordinator:
    """Rebuilds the in-memory schedule from persisted alarms at startup."""

    def __init__(self, repository: AlarmRepository, scheduler: SchedulerCore, logger: logging.Logger | None = None) -> None:
        self.repository = repository
        self.scheduler = scheduler
        self.logger = logger or logging.getLogger(__name__)

    async def recover(self) -> list[int]:
        """Register every active, unfired alarm. Safe to call repeatedly; returns the registered ids."""
        recovered: list[int] = []
        for alarm in await self.repository.list_pending():
            try:
                await self.scheduler.register(alarm.id, alarm.title, alarm.scheduled_time)
            except errors.InvalidSchedule as exc:
                self.logger.warning("Alarm %s (%r) was not recovered: %s", alarm.id, alarm.title, exc)
                continue
            recovered.append(alarm.id)

        if recovered:
            self.logger.info("Recovered %d alarm(s) from a previous session.", len(recovered))
        else:
            self.logger.debug("No alarms to recover.")
        return recovered
