"""Append-only audit trail (auditLogs table)."""
import logging
from datetime import datetime, timezone

from config import AUDIT_TABLE
from modules.schemas import AuditLogEntry

logger = logging.getLogger(__name__)


def create_audit_log(db, entry, client_info=None):
    """
    Insert one audit entry. Returns True on success.

    `entry` is an AuditLogEntry or a dict of its fields. Metadata is
    enriched with the client's ip / user agent and an ISO timestamp.
    A failed insert is itself recorded as a system.error entry, and
    False is returned; audit failures never propagate.
    """
    now = datetime.now(timezone.utc)
    try:
        if not isinstance(entry, AuditLogEntry):
            entry = AuditLogEntry.model_validate(entry)
        entry.metadata = {
            **entry.metadata,
            **{k: v for k, v in (client_info or {}).items() if v},
            "timestamp": now.isoformat(),
        }
        entry.timestamp = now
        db.table(AUDIT_TABLE).insert(entry.to_document()).execute()
        return True
    except Exception as e:
        logger.error("Error creating audit log: %s", e)
        try:
            original = entry.to_document() if isinstance(entry, AuditLogEntry) else entry
            db.table(AUDIT_TABLE).insert({
                "userId": "system",
                "category": "system",
                "action": "system.error",
                "description": "Failed to create audit log",
                "status": "error",
                "severity": "error",
                "metadata": {"details": {"error": str(e), "originalEntry": original}},
                "timestamp": now.isoformat(),
            }).execute()
        except Exception as inner:
            logger.error("Failed to create error log: %s", inner)
        return False


def _log(db, user_id, category, action, description, status, details, client_info):
    entry = {
        "userId": user_id,
        "category": category,
        "action": action,
        "description": description,
        "status": status,
        "metadata": {"details": details} if details else {},
    }
    return create_audit_log(db, entry, client_info)


def create_auth_audit_log(db, user_id, action, description, status="success", details=None, client_info=None):
    return _log(db, user_id, "auth", action, description, status, details, client_info)


def create_scan_audit_log(db, user_id, action, description, status="success", details=None, client_info=None):
    return _log(db, user_id, "scan", action, description, status, details, client_info)


def create_profile_audit_log(db, user_id, action, description, status="success", details=None, client_info=None):
    return _log(db, user_id, "profile", action, description, status, details, client_info)


def create_health_audit_log(db, user_id, action, description, status="success", details=None, client_info=None):
    return _log(db, user_id, "health", action, description, status, details, client_info)


def create_admin_audit_log(db, admin_id, action, description, status="success", details=None, client_info=None):
    return _log(db, admin_id, "system", action, description, status, details, client_info)


def list_audit_logs(db, categories=None, limit=100):
    """Newest entries first, optionally restricted to some categories."""
    query = db.table(AUDIT_TABLE).select("*")
    if categories:
        query = query.in_("category", list(categories))
    response = query.order("timestamp", desc=True).limit(limit).execute()
    return response.data or []
