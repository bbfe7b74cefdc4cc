import datetime

import pytest
import pytz
import xml.etree.ElementTree as ET

import nest_api
from nest_api import NestCameraApi, format_api_time, parse_events
from nest_device import NestDevice

from conftest import FakeNestConnection, make_manifest


def test_parse_events_keeps_manifest_order():
    manifest = make_manifest([
        {"programDateTime": "2024-02-24T20:00:00Z", "duration": "PT10S"},
        {"programDateTime": "2024-02-24T19:00:00Z", "duration": "PT20S"},
    ])

    events = parse_events(manifest, "DEVICE_1")

    assert [event.start_time.hour for event in events] == [20, 19]
    assert all(event.device_id == "DEVICE_1" for event in events)


def test_parse_events_skips_malformed_periods():
    manifest = make_manifest([
        {"programDateTime": "2024-02-24T19:00:00Z"},
        {"duration": "PT5S"},
        {"programDateTime": "not-a-time", "duration": "PT5S"},
        {"programDateTime": "2024-02-24T19:05:00Z", "duration": "five seconds"},
        {"programDateTime": "2024-02-24T19:06:00Z", "duration": "PT99999999999999H"},
        {"programDateTime": "2024-02-24T19:07:00Z", "duration": "-PT5S"},
        {"programDateTime": "2024-02-24T19:10:00.500Z", "duration": "PT12.5S"},
    ])

    events = parse_events(manifest, "DEVICE_1")

    assert len(events) == 1
    assert events[0].start_time == datetime.datetime(2024, 2, 24, 19, 10, 0, 500000, tzinfo=pytz.UTC)
    assert events[0].duration == datetime.timedelta(seconds=12.5)


def test_parse_events_ignores_namespace_and_nesting():
    manifest = (
        b'<MPD><Period programDateTime="2024-02-24T19:00:00Z" duration="PT5S">'
        b'<AdaptationSet/></Period></MPD>'
    )

    assert len(parse_events(manifest, "DEVICE_1")) == 1


def test_parse_events_rejects_non_xml():
    with pytest.raises(ET.ParseError):
        parse_events(b"<html>oops", "DEVICE_1")


def test_format_api_time():
    pacific = pytz.timezone("America/Vancouver")
    value = pacific.localize(datetime.datetime(2024, 2, 7, 11, 32, 25, 250000))

    assert format_api_time(value) == "2024-02-07T19:32:25.000Z"


def test_get_events_requests_lookback_window():
    device = NestDevice("DEVICE_1", "Front Door")
    connection = FakeNestConnection(manifests={
        "DEVICE_1": make_manifest([{"programDateTime": "2024-02-08T19:00:00Z", "duration": "PT5S"}]),
    })
    end_time = datetime.datetime(2024, 2, 8, 19, 32, 25, tzinfo=pytz.UTC)

    events = NestCameraApi(connection).get_events(device, end_time, 12 * 60)

    assert len(events) == 1
    device_id, url, params = connection.requests[0]
    assert device_id == "DEVICE_1"
    assert url == nest_api.EVENTS_URI
    assert params == {
        "start_time": "2024-02-08T07:32:25.000Z",
        "end_time": "2024-02-08T19:32:25.000Z",
        "types": 4,
        "variant": 2,
    }


def test_download_camera_event_uses_epoch_millis():
    device = NestDevice("DEVICE_1", "Front Door")
    connection = FakeNestConnection()
    event = parse_events(
        make_manifest([{"programDateTime": "2024-02-08T05:05:37.876Z", "duration": "PT19.495S"}]),
        "DEVICE_1",
    )[0]

    data = NestCameraApi(connection).download_camera_event(device, event)

    assert data == b"clip:1707368737876"
    _, url, params = connection.requests[0]
    assert url == nest_api.DOWNLOAD_VIDEO_URI
    assert params == {"start_time": 1707368737876, "end_time": 1707368757371}
