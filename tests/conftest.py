"""Pytest configuration and shared fakes."""

import datetime
import threading
import time
from types import SimpleNamespace

import pytest
import pytz
import requests

import nest_api

MPD_NAMESPACE = "urn:mpeg:dash:schema:mpd:2011"


def make_manifest(periods):
    """Build a DASH manifest from dicts of Period attributes."""
    body = "".join(
        "<Period " + " ".join(f'{key}="{value}"' for key, value in attrib.items()) + "/>"
        for attrib in periods
    )
    return f'<?xml version="1.0" encoding="UTF-8"?><MPD xmlns="{MPD_NAMESPACE}" type="static">{body}</MPD>'.encode()


def make_homegraph_device(unique_id, name, traits=("action.devices.traits.CameraStream",), model="Nest Doorbell"):
    return SimpleNamespace(
        device_name=name,
        traits=list(traits),
        hardware=SimpleNamespace(model=model),
        device_info=SimpleNamespace(agent_info=SimpleNamespace(unique_id=unique_id)),
    )


class FakeClock(object):
    def __init__(self, start=datetime.datetime(2024, 2, 24, 12, 0, 0, tzinfo=pytz.UTC)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += datetime.timedelta(**kwargs)


class FakeAuthenticator(object):
    def __init__(self):
        self.calls = []
        self.fail = False

    def get_token(self, service):
        self.calls.append(service)
        if self.fail:
            raise RuntimeError("oauth endpoint unavailable")
        return f"token-{len(self.calls)}"


class FakeDirectory(object):
    def __init__(self, homegraph=None):
        self.calls = []
        self.homegraph = homegraph or SimpleNamespace(home=SimpleNamespace(devices=[]))

    def fetch(self, access_token):
        self.calls.append(access_token)
        return self.homegraph


class FakeNestConnection(object):
    """
    Stands in for GoogleConnection.

    Manifests are keyed by device id; downloads return b"clip:<start_ms>" and
    record how many are running at the same time.
    """

    def __init__(self, manifests=None, devices=None, download_delay=0.0):
        self.manifests = manifests or {}
        self.devices = devices or []
        self.download_delay = download_delay
        self.failing_devices = set()
        self.failing_downloads = set()
        self.requests = []
        self.downloads = []

        self._lock = threading.Lock()
        self.running = 0
        self.max_running = 0

    def get_nest_camera_devices(self):
        return list(self.devices)

    def make_nest_get_request(self, device_id, url, params=None):
        params = dict(params or {})
        self.requests.append((device_id, url, params))

        if url == nest_api.EVENTS_URI:
            if device_id in self.failing_devices:
                raise requests.HTTPError(f"500 Server Error for {device_id}")
            return self.manifests.get(device_id, make_manifest([]))

        with self._lock:
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        try:
            if self.download_delay:
                time.sleep(self.download_delay)
            if params["start_time"] in self.failing_downloads:
                raise requests.HTTPError("404 Client Error: Not Found")
            with self._lock:
                self.downloads.append((device_id, params["start_time"], params["end_time"]))
            return f"clip:{params['start_time']}".encode()
        finally:
            with self._lock:
                self.running -= 1


def start_ms(iso_value):
    parsed = datetime.datetime.fromisoformat(iso_value.replace("Z", "+00:00"))
    return nest_api.epoch_millis(parsed.astimezone(pytz.UTC))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def vancouver():
    return pytz.timezone("America/Vancouver")
