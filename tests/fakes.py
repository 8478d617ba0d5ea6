import asyncio
import logging
import tempfile
import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

from sqlalchemy.ext.asyncio import create_async_engine

from alarm_scheduler_engine import AlarmService, DeliveryError, EngineConfig, OverduePolicy

T0 = datetime(2024, 3, 15, 6, 30, tzinfo=UTC)


class FakeClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime) -> None:
        self._now = start
        self._changed = asyncio.Condition()
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._now

    async def sleep_until(self, instant: datetime) -> None:
        async with self._changed:
            await self._changed.wait_for(lambda: self._now >= instant)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        await self.sleep_until(self._now + timedelta(seconds=seconds))

    async def advance(self, delta: timedelta) -> None:
        async with self._changed:
            self._now += delta
            self._changed.notify_all()
        # Give woken waits a chance to run.
        for _ in range(5):
            await asyncio.sleep(0)

    async def wait_for_sleeps(self, count: int) -> None:
        """Let the loop run until ``count`` backoff sleeps have started."""
        async with asyncio.timeout(5):
            while len(self.sleeps) < count:
                await asyncio.sleep(0)


class RecordingNotifier:
    """Records every display call; the first ``failures`` calls raise ``DeliveryError``."""

    def __init__(self, failures: int = 0, granted: bool = True, grant_on_request: bool = True) -> None:
        self.calls: list[tuple[str, str]] = []
        self.failures = failures
        self.granted = granted
        self.grant_on_request = grant_on_request
        self.permission_requests = 0
        self.entered = asyncio.Event()
        self.release: asyncio.Event | None = None

    async def display(self, title: str, body: str) -> None:
        self.calls.append((title, body))
        self.entered.set()
        if self.release is not None:
            await self.release.wait()
        if len(self.calls) <= self.failures:
            raise DeliveryError("notification service unavailable")

    async def is_granted(self) -> bool:
        return self.granted

    async def request(self) -> bool:
        self.permission_requests += 1
        self.granted = self.grant_on_request
        return self.granted


class EngineTestCase(unittest.IsolatedAsyncioTestCase):
    """Runs a started AlarmService on a fresh SQLite file, a FakeClock and a RecordingNotifier."""

    overdue_policy = OverduePolicy.FIRE_IMMEDIATELY
    delivery_backoff_seconds = 0.0

    async def asyncSetUp(self):
        tmp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(tmp_dir.cleanup)
        self.database_url = f"sqlite+aiosqlite:///{tmp_dir.name}/alarms.db"

        self.clock = FakeClock(T0)
        self.notifier = RecordingNotifier()
        self.mock_logger = Mock(logging.Logger)
        self.config_obj = EngineConfig(
            _env_file=None,
            database_url=self.database_url,
            overdue_policy=self.overdue_policy,
            delivery_max_attempts=3,
            delivery_backoff_seconds=self.delivery_backoff_seconds,
            delivery_backoff_factor=2.0,
        )
        self.service = await self.start_service()

    async def start_service(self, start: bool = True) -> AlarmService:
        """Build a service the way a freshly started process would."""
        db_engine = create_async_engine(self.database_url)
        self.addAsyncCleanup(db_engine.dispose)
        task_group = await self.enterAsyncContext(asyncio.TaskGroup())

        service = AlarmService.from_config(
            self.config_obj,
            task_group,
            notifier=self.notifier,
            db_engine=db_engine,
            clock=self.clock,
            logger=self.mock_logger,
        )
        # Cleanups run in reverse order, so pending waits are cancelled before the task group exits.
        self.addAsyncCleanup(service.shutdown)
        if start:
            await service.start()
        return service
