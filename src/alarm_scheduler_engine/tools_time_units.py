from datetime import datetime


def format_alarm_time(time: datetime, with_date: bool = False) -> str:
    time_str = time.strftime("%H:%M")

    if with_date:
        date_str = time.strftime("%A, %B %d")
        return f"{date_str} at {time_str}"
    return time_str
