class AlarmEngineError(Exception):
    """Base class for every error raised by the alarm engine."""


class InvalidSchedule(AlarmEngineError):
    """The alarm definition is malformed or its target instant was rejected."""


class AlarmNotFound(AlarmEngineError):
    def __init__(self, alarm_id: int) -> None:
        super().__init__(f"Alarm {alarm_id} does not exist.")
        self.alarm_id = alarm_id


class DeliveryError(AlarmEngineError):
    """A single notification attempt failed. Retried by the scheduler."""


class DeliveryFailed(AlarmEngineError):
    """Every delivery attempt of one activation failed."""

    def __init__(self, alarm_id: int, attempts: int) -> None:
        super().__init__(f"Delivery of alarm {alarm_id} failed after {attempts} attempt(s).")
        self.alarm_id = alarm_id
        self.attempts = attempts


class RecordFailed(AlarmEngineError):
    """The notification went out but the alarm could not be marked as fired."""

    def __init__(self, alarm_id: int, attempts: int) -> None:
        super().__init__(f"Alarm {alarm_id} was delivered but not recorded as fired after {attempts} attempt(s).")
        self.alarm_id = alarm_id
        self.attempts = attempts


class PermissionDenied(AlarmEngineError):
    """The notification collaborator refused permission to display notifications."""


class StoreError(AlarmEngineError):
    """The underlying database rejected or failed an operation."""


class EngineNotStarted(AlarmEngineError):
    """An alarm operation was requested before startup recovery finished."""
