from .alarm import Alarm, AlarmBase, AlarmRecord, AlarmState, AlarmStatus, AlarmView, utc_now

__all__ = ["Alarm", "AlarmBase", "AlarmRecord", "AlarmState", "AlarmStatus", "AlarmView", "utc_now"]
