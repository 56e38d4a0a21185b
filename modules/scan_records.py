"""
Scan record persistence (scanRecords table) and the user tip list.
Every query is scoped to the owning userId.
"""
import logging
import time
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from config import SCANS_TABLE, USERS_TABLE, DISPLAY_TIMEZONE, HISTORY_POLL_SECONDS
from modules.schemas import NewScanRecord, ScanRecord, SCHEMA_VERSION

logger = logging.getLogger(__name__)


def _utcnow():
    return datetime.now(timezone.utc)


def start_of_today(now=None):
    """Local midnight (DISPLAY_TIMEZONE) of `now`, as an aware UTC datetime."""
    now = now or _utcnow()
    local = now.astimezone(ZoneInfo(DISPLAY_TIMEZONE))
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


def to_scan_records(rows):
    """Validate raw rows into ScanRecords, skipping rows that cannot be read."""
    records = []
    for row in rows or []:
        try:
            records.append(ScanRecord.model_validate(row))
        except ValidationError as e:
            logger.warning("Skipping unreadable scan record %s: %s", row.get("id"), e)
    return records


def save_scan_record(db, user_id, scan):
    """Insert a new scan for `user_id` and return its server-generated id."""
    if not isinstance(scan, NewScanRecord):
        scan = NewScanRecord.model_validate(scan)

    document = scan.to_document()
    document.update({
        "userId": user_id,
        "timestamp": _utcnow().isoformat(),
        "schemaVersion": SCHEMA_VERSION,
    })
    try:
        response = db.table(SCANS_TABLE).insert(document).execute()
    except Exception as e:
        logger.error("Error saving scan record: %s", e)
        raise

    record_id = response.data[0]["id"]
    logger.info("SAVED scan %s for user %s", record_id, user_id)
    return record_id


def get_user_scan_history(db, user_id):
    """All of the user's scans, newest first."""
    try:
        response = (
            db.table(SCANS_TABLE)
            .select("*")
            .eq("userId", user_id)
            .order("timestamp", desc=True)
            .execute()
        )
    except Exception as e:
        logger.error("Error fetching scan history: %s", e)
        raise
    return to_scan_records(response.data)


def get_scan_records_by_condition(db, user_id, condition):
    try:
        response = (
            db.table(SCANS_TABLE)
            .select("*")
            .eq("userId", user_id)
            .eq("condition", condition)
            .order("timestamp", desc=True)
            .execute()
        )
    except Exception as e:
        logger.error("Error fetching scan records by condition: %s", e)
        raise
    return to_scan_records(response.data)


def get_todays_scans(db, user_id, now=None):
    """Scans made since local midnight, newest first."""
    since = start_of_today(now).isoformat()
    response = (
        db.table(SCANS_TABLE)
        .select("*")
        .eq("userId", user_id)
        .gte("timestamp", since)
        .order("timestamp", desc=True)
        .execute()
    )
    return to_scan_records(response.data)


def delete_scan_record(db, user_id, record_id):
    """Delete one of the user's scans. False when no such scan is owned by them."""
    try:
        response = (
            db.table(SCANS_TABLE)
            .delete()
            .eq("id", record_id)
            .eq("userId", user_id)
            .execute()
        )
    except Exception as e:
        logger.error("Error deleting scan record %s: %s", record_id, e)
        raise

    if not response.data:
        logger.warning("Scan %s not found for user %s", record_id, user_id)
        return False
    logger.info("DELETED scan %s for user %s", record_id, user_id)
    return True


def update_user_health_tips(db, user_id, tips):
    """Replace the tip list on the user row."""
    tips = [{"content": t["content"]} if isinstance(t, dict) else {"content": t.content} for t in tips]
    try:
        db.table(USERS_TABLE).update({
            "tips": tips,
            "updatedAt": _utcnow().isoformat(),
        }).eq("id", user_id).execute()
    except Exception as e:
        logger.error("Error updating health tips: %s", e)
        raise


def history_snapshot_stream(db, user_id, poll_seconds=HISTORY_POLL_SECONDS, max_polls=None, sleep=time.sleep):
    """
    Yield the user's history each time it changes.

    The first snapshot is always yielded; after that the store is polled
    every `poll_seconds` and a snapshot is yielded only when the set of
    record ids differs from the previous one. Stops after `max_polls`
    polls when given, or when a poll fails.
    """
    last_ids = None
    polls = 0
    while max_polls is None or polls < max_polls:
        if polls:
            sleep(poll_seconds)
        polls += 1
        try:
            records = get_user_scan_history(db, user_id)
        except Exception as e:
            logger.error("History stream for %s stopped: %s", user_id, e)
            return
        ids = [r.id for r in records]
        if ids != last_ids:
            last_ids = ids
            yield records
