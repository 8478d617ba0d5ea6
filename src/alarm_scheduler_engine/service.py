import asyncio
import logging
from datetime import datetime
from typing import Self

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from alarm_scheduler_engine import errors, models
from alarm_scheduler_engine.clock import Clock, SystemClock
from alarm_scheduler_engine.config import EngineConfig
from alarm_scheduler_engine.lifecycle import AlarmLifecycle
from alarm_scheduler_engine.logger_config import setup_logger
from alarm_scheduler_engine.notifier import Notifier, NotifierGateway, WebhookNotifier
from alarm_scheduler_engine.recovery import RecoveryCoordinator
from alarm_scheduler_engine.repository import AlarmRepository
from alarm_scheduler_engine.scheduler import SchedulerCore
from alarm_scheduler_engine.store import AlarmStore


class AlarmService:
    """Operations offered to the UI layer.

    ``start`` must run once before anything else; it creates the schema and recovers the
    schedule left by the previous process. ``shutdown`` cancels every pending wait, which
    lets the owning task group exit, and disposes the database engine if the service created it.
    """

    def __init__(
        self,
        repository: AlarmRepository,
        lifecycle: AlarmLifecycle,
        scheduler: SchedulerCore,
        recovery: RecoveryCoordinator,
        gateway: NotifierGateway,
        logger: logging.Logger | None = None,
        owned_engine: AsyncEngine | None = None,
    ) -> None:
        self.repository = repository
        self.lifecycle = lifecycle
        self.scheduler = scheduler
        self.recovery = recovery
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)
        self.owned_engine = owned_engine
        self._started = False

    @classmethod
    def from_config(
        cls,
        config_obj: EngineConfig,
        task_group: asyncio.TaskGroup,
        notifier: Notifier | None = None,
        db_engine: AsyncEngine | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ) -> Self:
        logger = logger or setup_logger("alarm_scheduler_engine", config_obj.log_level)
        clock = clock or SystemClock()
        if notifier is None:
            webhook_url = str(config_obj.webhook_url) if config_obj.webhook_url else None
            notifier = WebhookNotifier(webhook_url, timeout=config_obj.webhook_timeout_seconds, logger=logger)
        owned_engine: AsyncEngine | None = None
        if db_engine is None:
            db_engine = owned_engine = create_async_engine(config_obj.database_url)

        repository = AlarmRepository(AlarmStore(db_engine, logger=logger), logger=logger)
        lifecycle = AlarmLifecycle(repository, clock, logger=logger)
        gateway = NotifierGateway(notifier, template_name=config_obj.notification_template, logger=logger)
        scheduler = SchedulerCore(gateway, lifecycle, clock, task_group, config_obj=config_obj, logger=logger)
        recovery = RecoveryCoordinator(repository, scheduler, logger=logger)
        return cls(repository, lifecycle, scheduler, recovery, gateway, logger=logger, owned_engine=owned_engine)

    async def start(self) -> list[int]:
        if self._started:
            self.logger.warning("Alarm service already started, skipping recovery.")
            return []
        await self.repository.store.create_tables()
        recovered = await self.recovery.recover()
        self._started = True
        return recovered

    async def shutdown(self) -> None:
        await self.scheduler.cancel_all()
        self._started = False
        if self.owned_engine is not None:
            await self.owned_engine.dispose()

    def _require_started(self) -> None:
        if not self._started:
            raise errors.EngineNotStarted("Alarm service has not recovered its schedule yet.")

    async def create_alarm(self, title: str, instant: datetime) -> int:
        self._require_started()
        if not title.strip():
            raise errors.InvalidSchedule("Alarm title must not be empty.")
        self.scheduler.check_schedule(instant)
        await self.gateway.ensure_permission()

        alarm = await self.repository.create(title, instant)
        await self.scheduler.register(alarm.id, alarm.title, alarm.scheduled_time)
        return alarm.id

    async def list_alarms(self) -> list[models.AlarmView]:
        self._require_started()
        return [self._view(alarm) for alarm in await self.repository.list_all()]

    async def get_alarm(self, alarm_id: int) -> models.AlarmView:
        self._require_started()
        return self._view(await self.repository.get(alarm_id))

    async def delete_alarm(self, alarm_id: int) -> None:
        self._require_started()
        await self.scheduler.cancel(alarm_id)
        await self.repository.delete(alarm_id)
        self.scheduler.forget(alarm_id)

    async def toggle_alarm(self, alarm_id: int, active: bool) -> models.AlarmView:
        self._require_started()
        if not active:
            alarm = await self.lifecycle.set_active(alarm_id, False)
            await self.scheduler.cancel(alarm_id)
            return self._view(alarm)

        alarm = await self.repository.get(alarm_id)
        if alarm.fired_at is not None:
            # Fired alarms keep their row as history and are never scheduled again.
            return self._view(await self.lifecycle.set_active(alarm_id, True))

        self.scheduler.check_schedule(alarm.scheduled_time)
        await self.gateway.ensure_permission()
        alarm = await self.lifecycle.set_active(alarm_id, True)
        await self.scheduler.register(alarm.id, alarm.title, alarm.scheduled_time)
        return self._view(alarm)

    def _view(self, alarm: models.Alarm) -> models.AlarmView:
        if alarm.fired_at is not None:
            status = models.AlarmStatus.FIRED
        elif not alarm.is_active:
            status = models.AlarmStatus.CANCELLED
        elif self.scheduler.state(alarm.id) == models.AlarmState.DELIVERY_FAILED:
            status = models.AlarmStatus.DELIVERY_FAILED
        elif self.scheduler.state(alarm.id) == models.AlarmState.RECORD_FAILED:
            status = models.AlarmStatus.RECORD_FAILED
        else:
            status = models.AlarmStatus.PENDING
        return models.AlarmView(**alarm.model_dump(), status=status)
