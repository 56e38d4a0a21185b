"""
History dashboard aggregation over a user's scan records.
Timestamps are stored in UTC and shown in DISPLAY_TIMEZONE.
"""
import logging
from datetime import datetime, timedelta, timezone
from collections import defaultdict
from zoneinfo import ZoneInfo

from config import DISPLAY_TIMEZONE, TIP_ROTATION_SECONDS

logger = logging.getLogger(__name__)

TOP_NUTRIENTS = 6
NUTRIENT_LABEL_LENGTH = 8
DAY_NAMES = ['Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun']


def _display_zone():
    return ZoneInfo(DISPLAY_TIMEZONE)


def _parse_timestamp(raw):
    """Parse an ISO timestamp (or datetime) to an aware UTC datetime, or None."""
    if not raw:
        return None
    if isinstance(raw, datetime):
        dt = raw
    else:
        try:
            dt = datetime.fromisoformat(str(raw).replace('Z', '+00:00'))
        except (ValueError, TypeError):
            return None
    # Naive values are treated as UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _safe_float(val, default=0):
    """Safely convert a value to float, returning default on failure."""
    try:
        return float(val) if val is not None else default
    except (ValueError, TypeError):
        return default


def _local_date(dt):
    return dt.astimezone(_display_zone()).date()


def format_display_date(raw):
    """'Mar 05, 2025, 02:30 PM' in the display timezone, or '' when unreadable."""
    dt = _parse_timestamp(raw)
    if dt is None:
        return ''
    return dt.astimezone(_display_zone()).strftime('%b %d, %Y, %I:%M %p')


def _nutrient_values(record):
    """Numeric, non-zero nutrient values of one record, keyed by field name."""
    values = {}
    for key, value in record.nutrition_data.to_document().items():
        if key == 'schemaVersion' or isinstance(value, (str, bool)):
            continue
        number = _safe_float(value)
        if number:
            values[key] = number
    return values


def _short_label(name):
    return name[:NUTRIENT_LABEL_LENGTH] + '...' if len(name) > NUTRIENT_LABEL_LENGTH else name


def count_verdicts(records):
    counts = {'safe': 0, 'risky': 0}
    for record in records:
        counts['risky' if record.prediction.is_risky else 'safe'] += 1
    return counts


def get_history_analytics(records, now=None):
    """Totals, safe/risky chart series and average nutrients for the history page."""
    now = now or datetime.now(timezone.utc)
    today = _local_date(now)

    counts = count_verdicts(records)
    scans_today = sum(1 for r in records if _local_date(_parse_timestamp(r.timestamp)) == today)

    totals = defaultdict(float)
    seen = defaultdict(int)
    for record in records:
        for key, value in _nutrient_values(record).items():
            totals[key] += value
            seen[key] += 1

    averages = sorted(
        ({'name': _short_label(key), 'value': round(totals[key] / seen[key])} for key in totals),
        key=lambda x: x['value'],
        reverse=True,
    )[:TOP_NUTRIENTS]

    return {
        'scansToday': scans_today,
        'safeScans': counts['safe'],
        'riskyScans': counts['risky'],
        'totalScans': len(records),
        'pie_chart': {
            'labels': ['Safe', 'Risky'],
            'values': [counts['safe'], counts['risky']],
        },
        'bar_chart': {
            'labels': ['Safe', 'Risky'],
            'values': [counts['safe'], counts['risky']],
        },
        'avg_nutrients': averages,
    }


def current_week_start(now=None):
    """Monday of the current week, counted in the display timezone."""
    today = _local_date(now or datetime.now(timezone.utc))
    return today - timedelta(days=today.weekday())


def get_weekly_data(records, start_date):
    """Safe/risky scan counts per day for the 7 days starting at `start_date` (a date)."""
    end_date = start_date + timedelta(days=6)
    daily = {name: {'safe': 0, 'risky': 0} for name in DAY_NAMES}

    for record in records:
        day = _local_date(_parse_timestamp(record.timestamp))
        if day < start_date or day > end_date:
            continue
        daily[day.strftime('%a')]['risky' if record.prediction.is_risky else 'safe'] += 1

    return {
        'line_labels': DAY_NAMES,
        'line_safe': [daily[d]['safe'] for d in DAY_NAMES],
        'line_risky': [daily[d]['risky'] for d in DAY_NAMES],
        'total': sum(d['safe'] + d['risky'] for d in daily.values()),
    }


def history_rows(records):
    """Display rows for the history table, newest first as given."""
    rows = []
    for record in records:
        rows.append({
            'id': record.id,
            'date': format_display_date(record.timestamp),
            'foodName': record.food_name or 'Unnamed Food',
            'condition': record.condition,
            'prediction': record.prediction.prediction.lower(),
            'reasoning': record.prediction.reasoning,
            'nutrients': _nutrient_values(record),
        })
    return rows


def current_tip_index(tips, now=None):
    """Index of the tip on screen; advances every TIP_ROTATION_SECONDS."""
    if not tips:
        return 0
    now = now if now is not None else datetime.now(timezone.utc).timestamp()
    return int(now // TIP_ROTATION_SECONDS) % len(tips)
