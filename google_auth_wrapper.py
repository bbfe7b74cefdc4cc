"""
Google authentication and device discovery.

Provides a credential cache with three independently expiring artifacts and Nest
camera device discovery via Google's HomeGraph API. Tokens are minted through
glocaltokens' OAuth helper from a Google master token; the Nest API requires a
different OAuth scope than default Google Home access, so each scope has its own
cache slot.

Key responsibilities:
- Per-artifact TTL caching (account token, Nest token, home graph snapshot)
- Nest camera device discovery via HomeGraph
- Authenticated API requests to Nest services
"""

import dataclasses
import datetime
import random
from typing import Any, Callable, Generic, Optional, TypeVar

import grpc
import pytz
import requests
import glocaltokens.client
from ghome_foyer_api.api_pb2 import GetHomeGraphRequest
from ghome_foyer_api.api_pb2_grpc import StructuresServiceStub

from nest_device import NestDevice, is_nest_camera
from tools import logger

T = TypeVar("T")

ACCESS_TOKEN_TTL = datetime.timedelta(hours=1)
NEST_TOKEN_TTL = datetime.timedelta(hours=1)
HOMEGRAPH_TTL = datetime.timedelta(hours=24)

ACCESS_TOKEN_SERVICE = "oauth2:https://www.google.com/accounts/OAuthLogin"
NEST_SCOPE = "oauth2:https://www.googleapis.com/auth/nest-account"

GOOGLE_HOME_FOYER_API = "googlehomefoyer-pa.googleapis.com:443"
HOMEGRAPH_TIMEOUT_SECONDS = 30
REQUEST_TIMEOUT_SECONDS = 60


def utc_now() -> datetime.datetime:
    # Aware UTC: local wall time jumps back an hour at DST fall-back
    return datetime.datetime.now(tz=pytz.UTC)


class AuthenticationError(Exception):
    """The OAuth endpoint did not hand out a token."""


class DeviceDiscoveryError(Exception):
    """The home graph could not be fetched."""


@dataclasses.dataclass(frozen=True)
class CachedArtifact(Generic[T]):
    """
    A value with the time it was fetched and how long it stays usable.

    Instances are never mutated: a refresh swaps in a new CachedArtifact.
    """

    ttl: datetime.timedelta
    value: Optional[T] = None
    fetched_at: Optional[datetime.datetime] = None

    def __post_init__(self):
        if (self.value is None) != (self.fetched_at is None):
            raise ValueError("value and fetched_at must be set together")

    def is_fresh(self, now: datetime.datetime) -> bool:
        return self.value is not None and now - self.fetched_at <= self.ttl

    def refreshed(self, value: T, now: datetime.datetime) -> "CachedArtifact[T]":
        return CachedArtifact(ttl=self.ttl, value=value, fetched_at=now)


class GoogleAuthenticator(object):
    """Exchanges the Google master token for scoped OAuth access tokens."""

    def __init__(self, master_token, username, android_id=None):
        self._master_token = master_token
        self._username = username
        self._android_id = android_id or "%016x" % random.getrandbits(64)

    def get_token(self, service: str) -> str:
        res = glocaltokens.client.perform_oauth(
            self._username,
            self._master_token,
            self._android_id,
            app=glocaltokens.client.ACCESS_TOKEN_APP_NAME,
            service=service,
            client_sig=glocaltokens.client.ACCESS_TOKEN_CLIENT_SIGNATURE,
        )
        if "Auth" not in res:
            logger.debug("Request response: %s", res)
            raise AuthenticationError(f"Could not get access token for service '{service}'")
        return res["Auth"]


class HomeGraphDirectory(object):
    """Fetches the Google Home graph over the Foyer gRPC API."""

    def __init__(self, target=GOOGLE_HOME_FOYER_API, timeout=HOMEGRAPH_TIMEOUT_SECONDS):
        self._target = target
        self._timeout = timeout

    def fetch(self, access_token: str):
        credentials = grpc.composite_channel_credentials(
            grpc.ssl_channel_credentials(),
            grpc.access_token_call_credentials(access_token),
        )
        try:
            with grpc.secure_channel(self._target, credentials) as channel:
                stub = StructuresServiceStub(channel)
                return stub.GetHomeGraph(
                    GetHomeGraphRequest(string1="", num2=""),
                    timeout=self._timeout,
                )
        except grpc.RpcError as e:
            raise DeviceDiscoveryError(f"Failed to get home graph: {e}") from e


class CredentialCache(object):
    """
    Get-fresh-or-refresh access to the account token, the Nest token and the
    home graph snapshot.

    Each artifact has its own TTL and is refreshed lazily on access. A failed
    refresh raises and leaves the previous artifact in place, so a later call
    can retry. Concurrent callers are not coalesced: two callers that both see
    a stale artifact both refresh it and the last one to finish wins.
    """

    def __init__(self, authenticator, directory, clock: Optional[Callable[[], datetime.datetime]] = None):
        self._authenticator = authenticator
        self._directory = directory
        self._clock = clock or utc_now

        self._account_token = CachedArtifact(ttl=ACCESS_TOKEN_TTL)
        self._nest_token = CachedArtifact(ttl=NEST_TOKEN_TTL)
        self._homegraph = CachedArtifact(ttl=HOMEGRAPH_TTL)

    def get_account_token(self) -> str:
        if not self._account_token.is_fresh(self._clock()):
            logger.debug("There is no account access token stored, or it has expired, getting a new one...")
            token = self._authenticator.get_token(ACCESS_TOKEN_SERVICE)
            self._account_token = self._account_token.refreshed(token, self._clock())
        return self._account_token.value

    def get_nest_token(self) -> str:
        if not self._nest_token.is_fresh(self._clock()):
            logger.debug("There is no Nest access token stored, or it has expired, getting a new one...")
            token = self._authenticator.get_token(NEST_SCOPE)
            self._nest_token = self._nest_token.refreshed(token, self._clock())
        return self._nest_token.value

    def get_device_directory(self) -> Any:
        if not self._homegraph.is_fresh(self._clock()):
            logger.debug("Home graph is missing or stale, fetching a new snapshot...")
            homegraph = self._directory.fetch(self.get_account_token())
            self._homegraph = self._homegraph.refreshed(homegraph, self._clock())
        return self._homegraph.value


class GoogleConnection(object):
    """
    Google API connection manager for Nest camera integration.

    Owns one CredentialCache. Not meant to be shared between concurrently
    running downloads: each download builds its own connection.
    """

    NAME = "Google"

    def __init__(self, master_token, username, credentials=None):
        self._credentials = credentials or CredentialCache(
            authenticator=GoogleAuthenticator(master_token, username),
            directory=HomeGraphDirectory(),
        )

    @property
    def credentials(self):
        return self._credentials

    def make_nest_get_request(self, device_id: str, url: str, params=None) -> bytes:
        """
        Make authenticated GET request to Nest API.

        Args:
            device_id: Nest device ID
            url: URI template with {device_id} placeholder
            params: Query parameters

        Returns:
            Raw response content (XML manifest or MP4 bytes)
        """
        url = url.format(device_id=device_id)
        logger.debug(f"Sending request to: '{url}' with params: '{params}'")

        access_token = self._credentials.get_nest_token()

        res = requests.get(
            url=url,
            params=params or {},
            headers={
                "Authorization": f"Bearer {access_token}"
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        res.raise_for_status()
        return res.content

    def get_nest_camera_devices(self):
        """
        Discover Nest cameras via Google HomeGraph API.

        Returns:
            List of NestDevice objects for all Nest cameras in the Google account.
        """
        homegraph_response = self._credentials.get_device_directory()

        devices = [
            NestDevice.from_homegraph(device)
            for device in homegraph_response.home.devices
            if is_nest_camera(device)
        ]
        return [device for device in devices if device.device_id]
