"""
Time sources and IST schedule parsing

All stored timestamps are naive UTC, the way MongoDB hands them back.
"""

import datetime

IST = datetime.timezone(datetime.timedelta(hours=5, minutes=30), "IST")

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


class Clock:
    """Wall clock returning naive UTC datetimes."""

    def now(self):
        return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """Clock pinned to a moment; advanced by hand."""

    def __init__(self, moment):
        self.moment = moment

    def now(self):
        return self.moment

    def set(self, moment):
        self.moment = moment

    def advance(self, **delta):
        self.moment = self.moment + datetime.timedelta(**delta)
        return self.moment


def parse_schedule(date_str, time_str):
    """
    Interpret a requested date ('YYYY-MM-DD') and time ('HH:MM') as IST
    and return the matching naive UTC datetime.
    Raises ValueError when either part is missing or malformed.
    """
    if not date_str or not time_str:
        raise ValueError("date and time are required")

    local = datetime.datetime.strptime(
        f"{date_str.strip()} {time_str.strip()}", f"{DATE_FORMAT} {TIME_FORMAT}"
    )
    return local.replace(tzinfo=IST).astimezone(datetime.timezone.utc).replace(tzinfo=None)


def ist_from_utc(moment):
    return moment.replace(tzinfo=datetime.timezone.utc).astimezone(IST)
