"""
Event download orchestrator - core application logic.

Coordinates one archive pass:
1. List recent events per Nest camera (12 hour lookback)
2. Skip events whose clip already exists on disk
3. Download the rest concurrently, capped by a fixed number of admission slots
4. Write each clip under {output}/{YYYY}/{MM}/{DD}/ stamped with the event time

Devices are listed one after another through the session's GoogleConnection.
Every download builds its own GoogleConnection, so concurrent downloads never
share credential state with each other or with the listing loop.

Failures stay local: a device whose listing fails is skipped for the pass, and
a failed download is logged and retried on a later pass because its file is
still missing.
"""

import asyncio
import datetime
from typing import Callable, Iterable, Set, Tuple

import pytz

from nest_api import NestCameraApi
from nest_device import NestDevice
from storage import event_output_path, is_new_event, save_clip
from tools import logger

EVENT_HISTORY_DURATION_MINUTES = 12 * 60
DEFAULT_CONCURRENCY = 10


class EventDownloader(object):
    """
    Bounded-concurrency downloader for Nest camera events.

    The admission semaphore is held from before a download task is created
    until that task finishes, so at most `concurrency` downloads exist at once
    and the listing loop waits when all slots are taken.
    """

    def __init__(
        self,
        google_connection,
        nest_camera_devices: Iterable[NestDevice],
        output_path,
        connection_factory: Callable,
        timezone,
        concurrency: int = DEFAULT_CONCURRENCY,
        history_minutes: int = EVENT_HISTORY_DURATION_MINUTES,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self._nest_api = NestCameraApi(google_connection)
        self._nest_camera_devices = list(nest_camera_devices)
        self._output_path = output_path
        self._connection_factory = connection_factory
        self._timezone = timezone
        self._history_minutes = history_minutes
        self._slots = asyncio.Semaphore(concurrency)

    @property
    def nest_camera_devices(self):
        return self._nest_camera_devices

    @property
    def output_path(self):
        return self._output_path

    def _get_current_time_utc(self):
        """Get current time in UTC for API calls"""
        return datetime.datetime.now(tz=pytz.UTC)

    def _download_unit(self, nest_device: NestDevice, camera_event, filepath):
        connection = self._connection_factory()
        video_data = NestCameraApi(connection).download_camera_event(nest_device, camera_event)
        save_clip(filepath, video_data, camera_event.start_time)
        logger.debug(f"Saved {len(video_data)} bytes to {filepath}")

    async def _run_unit(self, nest_device: NestDevice, camera_event, filepath):
        try:
            await asyncio.to_thread(self._download_unit, nest_device, camera_event, filepath)
        finally:
            self._slots.release()

    def _collect(self, task: asyncio.Task) -> bool:
        event_id = task.get_name()
        error = task.exception()
        if error is not None:
            logger.error(f"Download error for event {event_id}: {error!r}")
            return False
        return True

    def _drain(self, pending: Set[asyncio.Task], progress: dict) -> None:
        for task in [task for task in pending if task.done()]:
            pending.discard(task)
            if self._collect(task):
                progress["completed"] += 1
                logger.info(f"Download progress: {progress['completed']}/{progress['total']}")
            else:
                progress["failed"] += 1

    async def _list_events(self, nest_device: NestDevice):
        end_time = self._get_current_time_utc()
        return await asyncio.to_thread(
            self._nest_api.get_events,
            nest_device,
            end_time,
            self._history_minutes,
        )

    async def check_and_download(self) -> Tuple[int, int]:
        """
        Run one pass over every device.

        Returns:
            (completed, total): downloads that succeeded, downloads scheduled
        """
        logger.info("Checking for new events")
        pending: Set[asyncio.Task] = set()
        scheduled = set()
        progress = {"completed": 0, "failed": 0, "total": 0}

        for nest_device in self._nest_camera_devices:
            try:
                events = await self._list_events(nest_device)
            except Exception as e:
                logger.error(f"[{nest_device.device_id}] Failed to fetch events: {e!r}")
                continue

            logger.info(f"[{nest_device.device_name}] Received {len(events)} camera event(s)")

            for camera_event in events:
                filepath = event_output_path(self._output_path, camera_event, self._timezone)

                if not is_new_event(filepath):
                    logger.debug(f"Skipping camera event {camera_event.event_id}, file already exists: {filepath}")
                    continue
                if filepath in scheduled:
                    logger.debug(f"Skipping camera event {camera_event.event_id}, {filepath} already scheduled")
                    continue
                scheduled.add(filepath)

                logger.info(f"Downloading camera event {camera_event.event_id} to {filepath}")

                # Backpressure: wait for a free slot before creating the task
                await self._slots.acquire()
                progress["total"] += 1
                pending.add(asyncio.create_task(
                    self._run_unit(nest_device, camera_event, filepath),
                    name=camera_event.event_id,
                ))

                self._drain(pending, progress)

        while pending:
            await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            self._drain(pending, progress)

        logger.info(
            f"All downloads complete: {progress['completed']}/{progress['total']} succeeded, "
            f"{progress['failed']} failed"
        )
        return progress["completed"], progress["total"]
