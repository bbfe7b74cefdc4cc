import datetime

import dateutil.parser
import isodate
import pytz
from pydantic import BaseModel, field_validator

from tools import logger

MAX_EVENT_DURATION = datetime.timedelta(minutes=10)

FRACTIONAL_Z_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _parse_rfc3339(value: str) -> datetime.datetime:
    parsed = dateutil.parser.isoparse(value)
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp '{value}' has no UTC offset")
    return parsed


def _parse_fractional_z(value: str) -> datetime.datetime:
    return pytz.UTC.localize(datetime.datetime.strptime(value, FRACTIONAL_Z_FORMAT))


def parse_program_date_time(value: str) -> datetime.datetime:
    """
    Parse a manifest programDateTime into an aware UTC datetime.

    Strict RFC-3339 is tried first, then the fractional-seconds-with-Z form
    (2024-02-24T19:51:58.217Z). The first parser that succeeds wins.
    """
    for parser in (_parse_rfc3339, _parse_fractional_z):
        try:
            return parser(value).astimezone(pytz.UTC)
        except (ValueError, OverflowError):
            continue
    raise ValueError(f"Unrecognized timestamp '{value}'")


def parse_event_duration(value: str, start_time: datetime.datetime) -> datetime.timedelta:
    """Parse an ISO-8601 duration; calendar durations (P1M) are anchored at start_time."""
    duration = isodate.parse_duration(value)
    if isinstance(duration, isodate.Duration):
        duration = duration.totimedelta(start=start_time)
    if duration < datetime.timedelta(0):
        raise ValueError(f"Negative duration '{value}'")
    return duration


class CameraEvent(BaseModel):
    device_id: str
    start_time: datetime.datetime
    duration: datetime.timedelta

    @field_validator("start_time")
    @classmethod
    def normalize_start_time(cls, v):
        """Store start times as aware UTC datetimes."""
        if v.tzinfo is None:
            return pytz.UTC.localize(v)
        return v.astimezone(pytz.UTC)

    @field_validator("duration")
    @classmethod
    def cap_duration(cls, v, info):
        """Clip overly long events instead of dropping them."""
        if v > MAX_EVENT_DURATION:
            logger.warning(
                f"Event duration {v} for device {info.data.get('device_id')} "
                f"at {info.data.get('start_time')} exceeded cap; clipping download window to {MAX_EVENT_DURATION}"
            )
            return MAX_EVENT_DURATION
        return v

    @property
    def end_time(self) -> datetime.datetime:
        return self.start_time + self.duration

    @property
    def event_id(self):
        """Generate unique event ID (logging only, never a storage key)."""
        return f"{self.start_time.isoformat()}->{self.end_time.isoformat()}|{self.device_id}"

    @classmethod
    def from_attrib(cls, xml_period_attributes: dict, device_id: str):
        start_time = parse_program_date_time(xml_period_attributes["programDateTime"])
        return CameraEvent(
            device_id=device_id,
            start_time=start_time,
            duration=parse_event_duration(xml_period_attributes["duration"], start_time),
        )
