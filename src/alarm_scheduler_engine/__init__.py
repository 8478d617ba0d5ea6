from alarm_scheduler_engine.clock import Clock, SystemClock
from alarm_scheduler_engine.config import EngineConfig, OverduePolicy
from alarm_scheduler_engine.errors import (
    AlarmEngineError,
    AlarmNotFound,
    DeliveryError,
    DeliveryFailed,
    EngineNotStarted,
    InvalidSchedule,
    PermissionDenied,
    RecordFailed,
    StoreError,
)
from alarm_scheduler_engine.notifier import Notifier, NotifierGateway, WebhookNotifier
from alarm_scheduler_engine.service import AlarmService

__all__ = [
    "AlarmEngineError",
    "AlarmNotFound",
    "AlarmService",
    "Clock",
    "DeliveryError",
    "DeliveryFailed",
    "EngineConfig",
    "EngineNotStarted",
    "InvalidSchedule",
    "Notifier",
    "NotifierGateway",
    "OverduePolicy",
    "PermissionDenied",
    "RecordFailed",
    "StoreError",
    "SystemClock",
    "WebhookNotifier",
]
