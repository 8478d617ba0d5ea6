import logging
from datetime import datetime

from alarm_scheduler_engine import models
from alarm_scheduler_engine.store import AlarmStore


class AlarmRepository:
    """Typed access to persisted alarms. Maps store rows to ``models.Alarm``."""

    def __init__(self, store: AlarmStore, logger: logging.Logger | None = None) -> None:
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    async def create(self, title: str, scheduled_time: datetime) -> models.Alarm:
        alarm_id = await self.store.insert(title, scheduled_time)
        return await self.get(alarm_id)

    async def get(self, alarm_id: int) -> models.Alarm:
        return models.Alarm.model_validate(await self.store.get(alarm_id))

    async def list_all(self) -> list[models.Alarm]:
        return [models.Alarm.model_validate(record) for record in await self.store.list()]

    async def list_pending(self) -> list[models.Alarm]:
        """Alarms that are active and have not fired yet."""
        return [models.Alarm.model_validate(record) for record in await self.store.list(pending_only=True)]

    async def delete(self, alarm_id: int) -> None:
        await self.store.delete(alarm_id)
        self.logger.debug("Alarm %s deleted.", alarm_id)

    async def set_active(self, alarm_id: int, active: bool) -> models.Alarm:
        return models.Alarm.model_validate(await self.store.update_active(alarm_id, active))

    async def set_fired(self, alarm_id: int, fired_at: datetime) -> models.Alarm:
        return models.Alarm.model_validate(await self.store.update_fired(alarm_id, fired_at))
