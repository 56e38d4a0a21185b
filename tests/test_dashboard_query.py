from datetime import date, datetime, timezone

from modules.dashboard_query import (
    count_verdicts,
    current_tip_index,
    current_week_start,
    format_display_date,
    get_history_analytics,
    get_weekly_data,
    history_rows,
)
from modules.scan_records import to_scan_records

NOW = datetime(2025, 3, 5, 4, 0, tzinfo=timezone.utc)  # noon in Manila


def records(make_scan_row):
    return to_scan_records([
        make_scan_row(prediction="Risky", timestamp="2025-03-05T01:00:00+00:00", sodium=600, potassium=300),
        make_scan_row(prediction="Safe", timestamp="2025-03-04T17:00:00+00:00", sodium=200),
        make_scan_row(prediction="Safe", timestamp="2025-03-03T02:00:00+00:00", sodium=100, fiber=0),
    ])


def test_counts_and_today(make_scan_row):
    data = get_history_analytics(records(make_scan_row), now=NOW)
    assert data["totalScans"] == 3
    assert data["safeScans"] == 2
    assert data["riskyScans"] == 1
    # 17:00 UTC on Mar 4 is already Mar 5 in Manila
    assert data["scansToday"] == 2
    assert data["pie_chart"] == {"labels": ["Safe", "Risky"], "values": [2, 1]}
    assert count_verdicts(records(make_scan_row)) == {"safe": 2, "risky": 1}


def test_average_nutrients_skip_zeros_and_truncate_names(make_scan_row):
    averages = get_history_analytics(records(make_scan_row), now=NOW)["avg_nutrients"]
    by_name = {a["name"]: a["value"] for a in averages}

    assert len(averages) == 6
    assert [a["value"] for a in averages] == sorted((a["value"] for a in averages), reverse=True)
    assert by_name["sodium"] == 300
    assert by_name["potassiu..."] == 300
    assert by_name["calories"] == 250
    # fiber was 0 on one record and is averaged over the other two
    assert "fiber" not in by_name or by_name["fiber"] == 3


def test_empty_history():
    data = get_history_analytics([], now=NOW)
    assert data["totalScans"] == 0
    assert data["avg_nutrients"] == []


def test_weekly_breakdown(make_scan_row):
    week = get_weekly_data(records(make_scan_row), date(2025, 3, 3))
    assert week["line_labels"][0] == "Mon"
    assert week["line_safe"] == [1, 0, 1, 0, 0, 0, 0]
    assert week["line_risky"] == [0, 0, 1, 0, 0, 0, 0]
    assert week["total"] == 3


def test_display_rows(make_scan_row):
    rows = history_rows(records(make_scan_row))
    assert rows[0]["date"] == "Mar 05, 2025, 09:00 AM"
    assert rows[0]["prediction"] == "risky"
    assert rows[0]["foodName"] == "Oat Bar"
    assert "schemaVersion" not in rows[0]["nutrients"]
    assert "fiber" not in rows[2]["nutrients"]


def test_format_display_date_handles_bad_input():
    assert format_display_date(None) == ""
    assert format_display_date("yesterday") == ""
    assert format_display_date("2025-01-01T00:00:00Z") == "Jan 01, 2025, 08:00 AM"


def test_tip_rotation():
    tips = [{"content": str(i)} for i in range(5)]
    assert current_tip_index(tips, now=0) == 0
    assert current_tip_index(tips, now=4.9) == 0
    assert current_tip_index(tips, now=5) == 1
    assert current_tip_index(tips, now=27) == 0
    assert current_tip_index([], now=27) == 0


def test_current_week_start_uses_display_timezone():
    # Sunday 18:00 UTC is already Monday 02:00 in Manila
    assert current_week_start(datetime(2025, 3, 9, 18, 0, tzinfo=timezone.utc)) == date(2025, 3, 10)
    assert current_week_start(NOW) == date(2025, 3, 3)
