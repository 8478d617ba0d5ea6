import asyncio
import dataclasses
import logging
from datetime import datetime

from alarm_scheduler_engine import errors
from alarm_scheduler_engine.clock import Clock
from alarm_scheduler_engine.config import EngineConfig, OverduePolicy
from alarm_scheduler_engine.lifecycle import AlarmLifecycle
from alarm_scheduler_engine.models import AlarmState
from alarm_scheduler_engine.notifier import NotifierGateway

_CANCELLABLE = (AlarmState.PENDING, AlarmState.DUE)


@dataclasses.dataclass(eq=False)
class _Wait:
    title: str
    fire_instant: datetime
    state: AlarmState = AlarmState.PENDING
    task: asyncio.Task | None = None
    failure: errors.DeliveryFailed | errors.RecordFailed | None = None
    discarded: bool = False


class SchedulerCore:
    """Holds at most one pending wake-up task per alarm id and runs the fire sequence.

    Register, cancel and the DUE -> DELIVERING transition run under ``_lock``; a finished task
    removes its own entry without awaiting. The lock is never held across the wait itself or
    across a delivery attempt. Once the activation ends only failures are remembered, since
    the row already shows fired and cancelled alarms. Once a wait is ``DELIVERING`` it can no longer
    be cancelled or replaced.
    """

    def __init__(
        self,
        gateway: NotifierGateway,
        lifecycle: AlarmLifecycle,
        clock: Clock,
        task_group: asyncio.TaskGroup,
        config_obj: EngineConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.gateway = gateway
        self.lifecycle = lifecycle
        self.clock = clock
        self.task_group = task_group
        self.config_obj = config_obj or EngineConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._lock = asyncio.Lock()
        self._waits: dict[int, _Wait] = {}
        self._failures: dict[int, errors.DeliveryFailed | errors.RecordFailed] = {}

    def check_schedule(self, fire_instant: datetime) -> None:
        """Raise ``InvalidSchedule`` if ``register`` would refuse this instant."""
        if fire_instant.tzinfo is None or fire_instant.utcoffset() is None:
            raise errors.InvalidSchedule("Alarm instant must be timezone-aware.")
        if self.config_obj.overdue_policy == OverduePolicy.REJECT and fire_instant <= self.clock.now():
            raise errors.InvalidSchedule(f"Alarm instant {fire_instant.isoformat()} is not in the future.")

    async def register(self, alarm_id: int, title: str, fire_instant: datetime) -> None:
        self.check_schedule(fire_instant)
        async with self._lock:
            previous = self._waits.get(alarm_id)
            if previous is not None:
                if previous.state not in _CANCELLABLE:
                    self.logger.info("Alarm %s is already being delivered, keeping the running activation.", alarm_id)
                    return
                self._cancel_locked(alarm_id, previous)
                self.logger.debug("Replaced pending wait of alarm %s.", alarm_id)

            wait = _Wait(title=title, fire_instant=fire_instant)
            self._waits[alarm_id] = wait
            self._failures.pop(alarm_id, None)
            wait.task = self.task_group.create_task(self._run(alarm_id, wait), name=f"alarm-{alarm_id}")

        if fire_instant <= self.clock.now():
            self.logger.info("Alarm %s (%r) is overdue, firing immediately.", alarm_id, title)
        else:
            self.logger.info("Alarm %s (%r) set for %s.", alarm_id, title, fire_instant.isoformat())

    async def cancel(self, alarm_id: int) -> None:
        async with self._lock:
            wait = self._waits.get(alarm_id)
            if wait is None:
                return
            if wait.state not in _CANCELLABLE:
                self.logger.debug("Alarm %s is being delivered, cancel ignored.", alarm_id)
                return
            self._cancel_locked(alarm_id, wait)
        self.logger.debug("Alarm %s cancelled.", alarm_id)

    async def cancel_all(self) -> list[int]:
        async with self._lock:
            cancelled = [alarm_id for alarm_id, wait in self._waits.items() if wait.state in _CANCELLABLE]
            for alarm_id in cancelled:
                self._cancel_locked(alarm_id, self._waits[alarm_id])
        if cancelled:
            self.logger.info("Cancelled %d pending alarm(s).", len(cancelled))
        return cancelled

    def _cancel_locked(self, alarm_id: int, wait: _Wait) -> None:
        del self._waits[alarm_id]
        wait.state = AlarmState.CANCELLED
        if wait.task is not None:
            wait.task.cancel()

    def pending_ids(self) -> set[int]:
        return {alarm_id for alarm_id, wait in self._waits.items() if wait.state in _CANCELLABLE}

    def scheduled_for(self, alarm_id: int) -> datetime | None:
        wait = self._waits.get(alarm_id)
        return wait.fire_instant if wait is not None else None

    def state(self, alarm_id: int) -> AlarmState | None:
        """State of the running activation, else the failure left by the last one, else None."""
        wait = self._waits.get(alarm_id)
        if wait is not None:
            return wait.state
        match self._failures.get(alarm_id):
            case errors.DeliveryFailed():
                return AlarmState.DELIVERY_FAILED
            case errors.RecordFailed():
                return AlarmState.RECORD_FAILED
        return None

    def failure(self, alarm_id: int) -> errors.DeliveryFailed | errors.RecordFailed | None:
        return self._failures.get(alarm_id)

    def forget(self, alarm_id: int) -> None:
        """Drop everything remembered about ``alarm_id``, including what a running delivery would report."""
        self._failures.pop(alarm_id, None)
        wait = self._waits.get(alarm_id)
        if wait is not None:
            wait.discarded = True

    async def join(self, alarm_id: int) -> None:
        """Wait until the current activation of ``alarm_id`` has finished, if there is one."""
        wait = self._waits.get(alarm_id)
        if wait is None or wait.task is None:
            return
        await asyncio.wait([wait.task])

    async def _run(self, alarm_id: int, wait: _Wait) -> None:
        try:
            if wait.fire_instant > self.clock.now():
                await self.clock.sleep_until(wait.fire_instant)
            wait.state = AlarmState.DUE

            async with self._lock:
                if self._waits.get(alarm_id) is not wait:
                    return
                wait.state = AlarmState.DELIVERING

            await self._fire(alarm_id, wait)
        except Exception as exc:
            self.logger.exception("Unexpected error while firing alarm %s.", alarm_id)
            wait.state = AlarmState.DELIVERY_FAILED
            wait.failure = errors.DeliveryFailed(alarm_id, 0)
            wait.failure.__cause__ = exc
        finally:
            if self._waits.get(alarm_id) is wait:
                del self._waits[alarm_id]
                if wait.failure is not None and not wait.discarded:
                    self._failures[alarm_id] = wait.failure

    async def _fire(self, alarm_id: int, wait: _Wait) -> None:
        try:
            await self._deliver(alarm_id, wait)
        except errors.DeliveryFailed as exc:
            wait.state = AlarmState.DELIVERY_FAILED
            wait.failure = exc
            self.logger.error("Alarm %s could not be delivered: %s", alarm_id, exc.__cause__)
            return

        try:
            await self._mark_fired(alarm_id)
        except errors.RecordFailed as exc:
            # The row stays unfired, so the next recovery delivers it again.
            wait.state = AlarmState.RECORD_FAILED
            wait.failure = exc
            self.logger.error("Could not record alarm %s as fired: %s", alarm_id, exc.__cause__)
            return
        wait.state = AlarmState.FIRED

    async def _deliver(self, alarm_id: int, wait: _Wait) -> None:
        max_attempts = self.config_obj.delivery_max_attempts
        body = self.gateway.render_body(wait.title, wait.fire_instant)
        last_error: errors.DeliveryError | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                await self.gateway.deliver(wait.title, body)
            except errors.DeliveryError as exc:
                last_error = exc
                if attempt == max_attempts:
                    break
                delay = self.config_obj.backoff_delay(attempt)
                self.logger.warning(
                    "Delivery of alarm %s failed (attempt %d/%d): %s. Retrying in %.1fs.",
                    alarm_id,
                    attempt,
                    max_attempts,
                    exc,
                    delay,
                )
                await self.clock.sleep(delay)
            else:
                self.logger.info("Alarm %s (%r) delivered.", alarm_id, wait.title)
                return

        raise errors.DeliveryFailed(alarm_id, max_attempts) from last_error

    async def _mark_fired(self, alarm_id: int) -> None:
        max_attempts = self.config_obj.delivery_max_attempts
        last_error: errors.StoreError | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                await self.lifecycle.mark_fired(alarm_id)
            except errors.AlarmNotFound:
                self.logger.info("Alarm %s was deleted while it was firing, discarding.", alarm_id)
                return
            except errors.StoreError as exc:
                last_error = exc
                if attempt == max_attempts:
                    break
                self.logger.warning("Recording alarm %s as fired failed, retrying: %s", alarm_id, exc)
                await self.clock.sleep(self.config_obj.backoff_delay(attempt))
            else:
                return

        raise errors.RecordFailed(alarm_id, max_attempts) from last_error
