"""Admin queries: roles, account status and usage stats."""
import logging
from datetime import datetime, timedelta, timezone

from config import SCANS_TABLE, USERS_TABLE
from modules.audit_log import create_admin_audit_log

logger = logging.getLogger(__name__)

ROLES = ("user", "admin")
ACTIVE_WINDOW_DAYS = 30


def _user_summary(row):
    return {
        "id": row.get("id"),
        "email": row.get("email", ""),
        "name": row.get("name", ""),
        "role": row.get("role", "user"),
        "active": row.get("active", True),
        "primaryCondition": row.get("primaryCondition"),
        "createdAt": row.get("createdAt"),
        "lastActive": row.get("updatedAt"),
    }


def is_user_admin(db, user_id):
    try:
        response = db.table(USERS_TABLE).select("role").eq("id", user_id).execute()
        return bool(response.data) and response.data[0].get("role") == "admin"
    except Exception as e:
        logger.error("Error checking admin status: %s", e)
        return False


def update_user_role(db, user_id, role, admin_id=None, client_info=None):
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    try:
        db.table(USERS_TABLE).update({
            "role": role,
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        }).eq("id", user_id).execute()
    except Exception as e:
        logger.error("Error updating user role: %s", e)
        return False

    if admin_id:
        create_admin_audit_log(
            db, admin_id, "admin.user_role", f"Set role of {user_id} to {role}",
            details={"targetUserId": user_id, "role": role}, client_info=client_info,
        )
    return True


def get_admin_users(db):
    try:
        response = db.table(USERS_TABLE).select("*").eq("role", "admin").execute()
    except Exception as e:
        logger.error("Error fetching admin users: %s", e)
        return []
    return [_user_summary(row) for row in response.data or []]


def get_all_users(db):
    try:
        response = db.table(USERS_TABLE).select("*").order("createdAt", desc=True).execute()
    except Exception as e:
        logger.error("Error fetching users: %s", e)
        raise
    return [_user_summary(row) for row in response.data or []]


def set_user_active(db, user_id, active, admin_id=None, client_info=None):
    """Activate or deactivate an account. Deactivated users cannot sign in."""
    try:
        db.table(USERS_TABLE).update({
            "active": bool(active),
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        }).eq("id", user_id).execute()
    except Exception as e:
        logger.error("Error updating user status: %s", e)
        if admin_id:
            create_admin_audit_log(
                db, admin_id, "admin.user_status", f"Failed to update status of {user_id}",
                status="error", details={"targetUserId": user_id, "error": str(e)},
                client_info=client_info,
            )
        raise

    if admin_id:
        create_admin_audit_log(
            db, admin_id, "admin.user_status",
            f"{'Activated' if active else 'Deactivated'} user {user_id}",
            details={"targetUserId": user_id, "active": bool(active)}, client_info=client_info,
        )
    logger.info("User %s active=%s", user_id, active)


def get_user_stats(db, now=None):
    """
    Totals for the admin dashboard.

    activeUsers counts distinct users with a scan in the last 30 days;
    scanningTrend compares that window's scan count with the 30 days
    before it ("increasing" when it is at least as large).
    """
    now = now or datetime.now(timezone.utc)
    window_start = now - timedelta(days=ACTIVE_WINDOW_DAYS)
    previous_start = window_start - timedelta(days=ACTIVE_WINDOW_DAYS)

    try:
        users = db.table(USERS_TABLE).select("id", count="exact").execute()
        recent = (
            db.table(SCANS_TABLE)
            .select("userId")
            .gte("timestamp", window_start.isoformat())
            .execute()
        )
        previous = (
            db.table(SCANS_TABLE)
            .select("id")
            .gte("timestamp", previous_start.isoformat())
            .lt("timestamp", window_start.isoformat())
            .execute()
        )
    except Exception as e:
        logger.error("Error fetching user stats: %s", e)
        raise

    total_users = users.count if users.count is not None else len(users.data or [])
    recent_rows = recent.data or []
    total_scans = len(recent_rows)
    active_users = len({row.get("userId") for row in recent_rows if row.get("userId")})

    return {
        "totalUsers": total_users,
        "activeUsers": active_users,
        "totalScans": total_scans,
        "scanningTrend": "increasing" if total_scans >= len(previous.data or []) else "decreasing",
    }
