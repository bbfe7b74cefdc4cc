"""
Clip storage layout.

A clip lives at {root}/{YYYY}/{MM}/{DD}/{YYYY-MM-DDTHH-MM-SS}.mp4, named after the
event start in the archive timezone. That path is the only dedup record: an event
whose file exists has already been captured.
"""

import datetime
import os
from pathlib import Path

import pytz

from tools import logger

DEFAULT_TIMEZONE = "America/Vancouver"

CLIP_SUFFIX = ".mp4"
PARTIAL_SUFFIX = ".part"
CLIP_NAME_FORMAT = "%Y-%m-%dT%H-%M-%S" + CLIP_SUFFIX


def resolve_timezone(name=None):
    """Return the pytz zone for name, falling back to DEFAULT_TIMEZONE."""
    if name:
        try:
            return pytz.timezone(name)
        except pytz.UnknownTimeZoneError:
            logger.warning(f"Invalid TIMEZONE '{name}', falling back to {DEFAULT_TIMEZONE}")
    return pytz.timezone(DEFAULT_TIMEZONE)


def event_output_path(output_root, camera_event, timezone) -> Path:
    event_local_time = camera_event.start_time.astimezone(timezone)
    return (
        Path(output_root)
        / event_local_time.strftime("%Y")
        / event_local_time.strftime("%m")
        / event_local_time.strftime("%d")
        / event_local_time.strftime(CLIP_NAME_FORMAT)
    )


def is_new_event(path: Path) -> bool:
    return not Path(path).is_file()


def save_clip(path: Path, video_data: bytes, event_time: datetime.datetime) -> Path:
    """
    Write a clip and stamp it with the event start as atime/mtime.

    Data goes to a .part sibling first and is renamed into place only once
    complete, so an interrupted write never looks like a captured event.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    partial_path = path.with_name(path.name + PARTIAL_SUFFIX)

    timestamp = event_time.timestamp()
    try:
        with open(partial_path, "wb") as f:
            f.write(video_data)
        os.utime(partial_path, (timestamp, timestamp))
        os.replace(partial_path, path)
    except OSError:
        partial_path.unlink(missing_ok=True)
        raise
    return path
