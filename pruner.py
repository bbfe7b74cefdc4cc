import datetime
import os
from pathlib import Path

from storage import CLIP_SUFFIX
from tools import logger


def prune_old_videos(output_path, retention_period: int, use_hours: bool = False):
    """
    Delete clips whose modification time is older than the retention period.

    Clip mtimes are the event start, so age is measured from when the event
    happened rather than when it was downloaded. A retention_period of 0 keeps
    everything. Per-file errors are logged and skipped.

    Returns:
        (deleted_count, kept_count)
    """
    if retention_period == 0:
        return 0, 0

    unit = "hours" if use_hours else "days"
    logger.info(f"Pruning videos older than {retention_period} {unit}")

    retention = datetime.timedelta(hours=retention_period) if use_hours else datetime.timedelta(days=retention_period)
    cutoff_time = (datetime.datetime.now() - retention).timestamp()
    deleted_count = 0
    kept_count = 0

    for path in Path(output_path).rglob("*" + CLIP_SUFFIX):
        try:
            if not path.is_file():
                continue
            modified = os.stat(path).st_mtime
        except OSError as e:
            logger.error(f"Failed to get metadata for {path}: {e}")
            continue

        if modified >= cutoff_time:
            kept_count += 1
            continue

        try:
            path.unlink()
            logger.info(f"Deleted old video {path}")
            deleted_count += 1
        except OSError as e:
            logger.error(f"Failed to delete video {path}: {e}")

    logger.info(f"Pruning complete: deleted {deleted_count}, kept {kept_count}")
    return deleted_count, kept_count
