from collections import namedtuple
from datetime import datetime, date, time

import pytz

LocalTime = namedtuple('LocalTime', ['date', 'hour', 'minute'])


def utcnow():
    """Naive UTC now, the representation stored in the database."""
    return datetime.now(pytz.utc).replace(tzinfo=None)


class BusinessClock:
    """
    Converts between absolute instants and business-local wall-clock time.

    Every working-hours decision is made in the configured business timezone,
    never in the requester's. Conversions go through the tz database (pytz),
    so zones observing DST are handled correctly.
    """

    def __init__(self, tz_name, start_hour=7, end_hour=16):
        # Raises pytz.UnknownTimeZoneError for bad configuration
        self.tz = pytz.timezone(tz_name)
        if not 0 <= start_hour < end_hour <= 23:
            raise ValueError(f"Invalid working hours {start_hour}-{end_hour}")
        self.start_hour = start_hour
        self.end_hour = end_hour

    @classmethod
    def from_config(cls, config):
        return cls(config['BUSINESS_TIMEZONE'],
                   config['WORKING_HOURS_START'],
                   config['WORKING_HOURS_END'])

    @staticmethod
    def now():
        return datetime.now(pytz.utc)

    @staticmethod
    def as_utc(instant: datetime) -> datetime:
        """Aware UTC datetime. Naive input is taken to be UTC already."""
        if instant.tzinfo is None:
            return pytz.utc.localize(instant)
        return instant.astimezone(pytz.utc)

    @staticmethod
    def to_storage(instant: datetime) -> datetime:
        return BusinessClock.as_utc(instant).replace(tzinfo=None)

    @staticmethod
    def from_storage(value: datetime) -> datetime:
        return pytz.utc.localize(value) if value.tzinfo is None else value

    def parse_instant(self, value: str) -> datetime:
        """ISO 8601 string to aware UTC. Values without an offset are business-local wall time."""
        if not isinstance(value, str):
            raise ValueError(f"Expected an ISO 8601 string, got {type(value).__name__}")
        if value.endswith('Z'):
            value = value[:-1] + '+00:00'
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            parsed = self.tz.normalize(self.tz.localize(parsed))
        return parsed.astimezone(pytz.utc)

    def to_business_local(self, instant: datetime) -> LocalTime:
        local = self.as_utc(instant).astimezone(self.tz)
        return LocalTime(local.date(), local.hour, local.minute)

    def to_instant(self, day: date, hour: int, minute: int = 0) -> datetime:
        local = self.tz.localize(datetime.combine(day, time(hour, minute)))
        return self.tz.normalize(local).astimezone(pytz.utc)

    def is_within_working_hours(self, instant: datetime) -> bool:
        local = self.as_utc(instant).astimezone(self.tz)
        seconds = local.hour * 3600 + local.minute * 60 + local.second
        return self.start_hour * 3600 <= seconds <= self.end_hour * 3600

    def interval_within_working_hours(self, start: datetime, end: datetime) -> bool:
        """Both ends inside working hours, on the same business-local day."""
        if not (self.is_within_working_hours(start) and self.is_within_working_hours(end)):
            return False
        return self.to_business_local(start).date == self.to_business_local(end).date

    def day_window(self, day: date):
        """Opening and closing instants for a business-local day."""
        return self.to_instant(day, self.start_hour), self.to_instant(day, self.end_hour)

    def today(self) -> date:
        return self.to_business_local(self.now()).date
