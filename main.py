"""
Google Nest Camera Archiver

Entry point for the archive service. Discovers Nest cameras behind a Google account,
downloads new camera events into a date-partitioned folder tree and prunes clips
older than the retention period.

Uses AsyncIOScheduler to run the download and prune jobs on independent intervals.
"""

from dotenv import load_dotenv

load_dotenv()

from tools import logger
from google_auth_wrapper import GoogleConnection
from downloader import DEFAULT_CONCURRENCY, EventDownloader
from pruner import prune_old_videos
from storage import resolve_timezone

import os
import sys
import argparse
import datetime
import asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler

__version__ = "1.0"

GOOGLE_MASTER_TOKEN = os.getenv("GOOGLE_MASTER_TOKEN")
GOOGLE_USERNAME = os.getenv("GOOGLE_USERNAME")

TIMEZONE = os.getenv("TIMEZONE")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Downloads Nest camera events to the local filesystem and prunes old clips."
    )
    parser.add_argument(
        "--output", "-o", type=str, default=".",
        help="Output directory for downloaded videos"
    )
    parser.add_argument(
        "--concurrency", "-c", type=int, default=DEFAULT_CONCURRENCY,
        help="Number of concurrent downloads"
    )
    parser.add_argument(
        "--check-interval", "-i", type=int, default=5,
        help="Interval in minutes to check for new events"
    )
    parser.add_argument(
        "--once", action="store_true",
        help="Run once and exit instead of running continuously"
    )
    parser.add_argument(
        "--retention-days", type=int, default=60,
        help="Number of days to keep videos (0 = keep forever, no pruning)"
    )
    parser.add_argument(
        "--retention-hours", action="store_true",
        help="Use hours instead of days for the retention period (for testing)"
    )
    parser.add_argument(
        "--prune-interval", type=int, default=10,
        help="Interval in minutes to prune old videos"
    )
    args = parser.parse_args(argv)
    if args.concurrency < 1:
        parser.error("--concurrency must be at least 1")
    if args.check_interval < 1 or args.prune_interval < 1:
        parser.error("intervals must be at least 1 minute")
    if args.retention_days < 0:
        parser.error("--retention-days cannot be negative")
    return args


class ArchiverService(object):
    """
    Holds the session and runs the two periodic jobs.

    The session (connection + device list) is created on the first download
    tick. If device discovery fails no session exists and the next tick tries
    again from scratch.
    """

    def __init__(self, master_token, username, output_path, concurrency, timezone,
                 retention_period, use_hours, connection_factory=None):
        self._master_token = master_token
        self._username = username
        self._output_path = output_path
        self._concurrency = concurrency
        self._timezone = timezone
        self._retention_period = retention_period
        self._use_hours = use_hours
        self._connection_factory = connection_factory or self._new_connection

        self._downloader = None

    def _new_connection(self):
        return GoogleConnection(self._master_token, self._username)

    @property
    def downloader(self):
        return self._downloader

    def initialize(self):
        """Create the output folder, connect and discover cameras. Returns None on failure."""
        try:
            os.makedirs(self._output_path, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create output directory {self._output_path}: {e}")
            return None

        logger.info("Initializing the Google connection using the master_token")
        google_connection = self._connection_factory()

        logger.info("Getting Camera Devices")
        try:
            nest_camera_devices = google_connection.get_nest_camera_devices()
        except Exception as e:
            logger.error(f"Failed to get camera devices: {e!r}")
            return None
        logger.info(f"Found {len(nest_camera_devices)} camera device(s)")

        return EventDownloader(
            google_connection=google_connection,
            nest_camera_devices=nest_camera_devices,
            output_path=self._output_path,
            connection_factory=self._connection_factory,
            timezone=self._timezone,
            concurrency=self._concurrency,
        )

    async def check_events(self):
        if self._downloader is None:
            self._downloader = await asyncio.to_thread(self.initialize)
        if self._downloader is None:
            return

        try:
            await self._downloader.check_and_download()
        except Exception as e:
            logger.error(f"Error checking events: {e!r}")

    def prune(self):
        if not os.path.isdir(self._output_path):
            logger.debug(f"Output directory {self._output_path} does not exist yet, nothing to prune")
            return
        try:
            prune_old_videos(self._output_path, self._retention_period, self._use_hours)
        except Exception as e:
            logger.error(f"Error pruning videos: {e!r}")


def main(argv=None):
    """
    Initialize and run the archive service.

    Validates the environment, then either runs a single download + prune pass
    (--once) or starts the scheduler and runs until interrupted.
    """
    args = parse_args(argv)

    logger.info("Welcome to the Google Nest Camera Archiver")
    logger.info(f"Version: {__version__}")

    if not GOOGLE_MASTER_TOKEN or not GOOGLE_USERNAME:
        logger.error("GOOGLE_MASTER_TOKEN and GOOGLE_USERNAME environment variables must be set")
        sys.exit(1)

    service = ArchiverService(
        master_token=GOOGLE_MASTER_TOKEN,
        username=GOOGLE_USERNAME,
        output_path=os.path.expanduser(args.output),
        concurrency=args.concurrency,
        timezone=resolve_timezone(TIMEZONE),
        retention_period=args.retention_days,
        use_hours=args.retention_hours,
    )

    if args.once:
        asyncio.run(service.check_events())
        service.prune()
        return

    logger.info(f"Checking for events every {args.check_interval} minute(s)")
    if args.retention_days > 0:
        unit = "hours" if args.retention_hours else "days"
        logger.info(f"Video pruning enabled: keeping {args.retention_days} {unit}, pruning every {args.prune_interval} minute(s)")
    else:
        logger.info("Video pruning disabled (retention_days = 0)")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    now = datetime.datetime.now()
    scheduler = AsyncIOScheduler(event_loop=loop)
    scheduler.add_job(
        service.check_events,
        'interval',
        minutes=args.check_interval,
        next_run_time=now,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        service.prune,
        'interval',
        minutes=args.prune_interval,
        next_run_time=now + datetime.timedelta(seconds=10),
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()

    try:
        loop.run_forever()
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        loop.close()

if __name__ == "__main__":
    main()
