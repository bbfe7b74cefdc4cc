import datetime
import xml.etree.ElementTree as ET

import pytz

from models import CameraEvent
from tools import logger

NEST_API_DOMAIN = "https://nest-camera-frontend.googleapis.com"

EVENTS_URI = NEST_API_DOMAIN + "/dashmanifest/namespace/nest-phoenix-prod/device/{device_id}"
DOWNLOAD_VIDEO_URI = NEST_API_DOMAIN + "/mp4clip/namespace/nest-phoenix-prod/device/{device_id}"

PERIOD_TAG = "Period"

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=pytz.UTC)


def epoch_millis(value: datetime.datetime) -> int:
    # Integer arithmetic; float timestamps can land one millisecond short
    return (value - EPOCH) // datetime.timedelta(milliseconds=1)


def format_api_time(value: datetime.datetime) -> str:
    return value.astimezone(pytz.UTC).strftime("%Y-%m-%dT%H:%M:%S") + ".000Z" # 2024-02-07T19:32:25.000Z


def _local_name(tag):
    # "{urn:mpeg:dash:schema:mpd:2011}Period" -> "Period"
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def parse_events(events_xml, device_id: str):
    """
    Turn a DASH manifest into CameraEvents, in manifest order.

    Periods without both programDateTime and duration, or with values that do
    not parse, are skipped. A document that is not XML at all raises
    ET.ParseError.
    """
    from tools import VERBOSE

    if VERBOSE:
        logger.debug(f"Full XML response:\n{events_xml.decode('utf-8') if isinstance(events_xml, bytes) else events_xml}")

    root = ET.fromstring(events_xml)

    events = []
    for period in root.iter():
        if _local_name(period.tag) != PERIOD_TAG:
            continue

        if VERBOSE:
            logger.debug(f"XML Period attributes: {period.attrib}")

        if "programDateTime" not in period.attrib or "duration" not in period.attrib:
            logger.debug(f"[{device_id}] Skipping period without programDateTime/duration: {period.attrib}")
            continue

        try:
            events.append(CameraEvent.from_attrib(period.attrib, device_id))
        except (ValueError, OverflowError) as e:
            logger.debug(f"[{device_id}] Skipping unparseable period {period.attrib}: {e}")
    return events


class NestCameraApi(object):
    """Event listing and clip download against the Nest camera frontend."""

    def __init__(self, google_connection):
        self._connection = google_connection

    def get_events(self, nest_device, end_time: datetime.datetime, duration_minutes: int):
        start_time = end_time - datetime.timedelta(minutes=duration_minutes)
        params = {
            "start_time": format_api_time(start_time),
            "end_time": format_api_time(end_time),
            "types": 4,
            "variant": 2,
        }
        return parse_events(
            self._connection.make_nest_get_request(
                nest_device.device_id,
                EVENTS_URI,
                params=params
            ),
            nest_device.device_id,
        )

    def download_camera_event(self, nest_device, camera_event: CameraEvent) -> bytes:
        params = {
            "start_time": epoch_millis(camera_event.start_time), # 1707368737876
            "end_time": epoch_millis(camera_event.end_time), # 1707368757371
        }
        return self._connection.make_nest_get_request(
            nest_device.device_id,
            DOWNLOAD_VIDEO_URI,
            params=params
        )
