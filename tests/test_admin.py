from datetime import datetime, timedelta, timezone

import pytest

from modules.admin import (
    get_admin_users,
    get_all_users,
    get_user_stats,
    is_user_admin,
    set_user_active,
    update_user_role,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def days_ago(n):
    return (NOW - timedelta(days=n)).isoformat()


@pytest.fixture
def users(fake_db):
    fake_db.tables["users"] = [
        {"id": "a1", "name": "Admin", "email": "admin@example.com", "role": "admin", "createdAt": "2025-01-01"},
        {"id": "u1", "name": "Una", "email": "una@example.com", "role": "user", "createdAt": "2025-02-01"},
        {"id": "u2", "name": "Dos", "email": "dos@example.com", "createdAt": "2025-03-01"},
    ]
    return fake_db


def test_roles(users):
    assert is_user_admin(users, "a1")
    assert not is_user_admin(users, "u1")
    assert not is_user_admin(users, "missing")
    assert [u["id"] for u in get_admin_users(users)] == ["a1"]


def test_update_role_audited(users):
    assert update_user_role(users, "u1", "admin", admin_id="a1")
    assert is_user_admin(users, "u1")
    assert users.rows("auditLogs")[0]["action"] == "admin.user_role"

    with pytest.raises(ValueError):
        update_user_role(users, "u1", "superuser")


def test_all_users_newest_first_with_defaults(users):
    listed = get_all_users(users)
    assert [u["id"] for u in listed] == ["u2", "u1", "a1"]
    assert listed[0]["role"] == "user"
    assert listed[0]["active"] is True


def test_set_user_active_audited(users):
    set_user_active(users, "u1", False, admin_id="a1", client_info={"ip": "1.2.3.4"})
    assert users.rows("users")[1]["active"] is False

    entry = users.rows("auditLogs")[0]
    assert entry["action"] == "admin.user_status"
    assert entry["category"] == "system"
    assert entry["metadata"]["details"] == {"targetUserId": "u1", "active": False}


def test_set_user_active_failure_raised_and_audited(users):
    users.fail("users", "update")
    with pytest.raises(RuntimeError):
        set_user_active(users, "u1", False, admin_id="a1")
    assert users.rows("auditLogs")[0]["status"] == "error"


def test_stats(users):
    users.tables["scanRecords"] = [
        {"id": "s1", "userId": "u1", "timestamp": days_ago(1)},
        {"id": "s2", "userId": "u1", "timestamp": days_ago(5)},
        {"id": "s3", "userId": "u2", "timestamp": days_ago(29)},
        {"id": "s4", "userId": "u2", "timestamp": days_ago(40)},
        {"id": "s5", "userId": "u1", "timestamp": days_ago(90)},
    ]
    assert get_user_stats(users, now=NOW) == {
        "totalUsers": 3,
        "activeUsers": 2,
        "totalScans": 3,
        "scanningTrend": "increasing",
    }


def test_stats_trend_decreasing(users):
    users.tables["scanRecords"] = [
        {"id": "s1", "userId": "u1", "timestamp": days_ago(35)},
        {"id": "s2", "userId": "u1", "timestamp": days_ago(45)},
    ]
    stats = get_user_stats(users, now=NOW)
    assert stats["totalScans"] == 0
    assert stats["activeUsers"] == 0
    assert stats["scanningTrend"] == "decreasing"
