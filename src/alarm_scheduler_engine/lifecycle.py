import logging

from alarm_scheduler_engine import models
from alarm_scheduler_engine.clock import Clock
from alarm_scheduler_engine.repository import AlarmRepository


class AlarmLifecycle:
    """The only writer of ``fired_at`` and ``is_active``.

    Updating the row does not touch the scheduler. Callers toggling ``is_active`` also
    register or cancel the alarm's wait; the two writes are not transactional, and startup
    recovery rebuilds the schedule from the rows.
    """

    def __init__(self, repository: AlarmRepository, clock: Clock, logger: logging.Logger | None = None) -> None:
        self.repository = repository
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    async def mark_fired(self, alarm_id: int) -> models.Alarm:
        """Set ``fired_at`` to now. Raises ``AlarmNotFound`` if the alarm was deleted."""
        alarm = await self.repository.set_fired(alarm_id, self.clock.now())
        self.logger.info("Alarm %s marked as fired at %s.", alarm_id, alarm.fired_at)
        return alarm

    async def set_active(self, alarm_id: int, active: bool) -> models.Alarm:
        alarm = await self.repository.set_active(alarm_id, active)
        self.logger.debug("Alarm %s is_active set to %s.", alarm_id, active)
        return alarm
