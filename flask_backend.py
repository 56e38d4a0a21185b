"""Flask frontend API for NutriSafe: food label risk checks for diabetes and hypertension."""
import json
import logging
import os
import subprocess
from datetime import datetime, timedelta, timezone
from functools import wraps

import requests
from flask import Flask, Response, jsonify, request, session, stream_with_context
from pydantic import ValidationError

from config import (
    BACKEND_TIMEOUT,
    BACKEND_URL,
    DISPLAY_TIMEZONE,
    HISTORY_POLL_SECONDS,
    LOG_LEVEL,
    SECRET_KEY,
    TIP_ROTATION_SECONDS,
)
from database import db
from modules.admin import (
    get_admin_users,
    get_all_users,
    get_user_stats,
    is_user_admin,
    set_user_active,
    update_user_role,
)
from modules.audit_log import (
    create_auth_audit_log,
    create_health_audit_log,
    create_profile_audit_log,
    create_scan_audit_log,
    list_audit_logs,
)
from modules.auth_service import (
    create_user_profile,
    get_user_profile,
    reset_password,
    sign_in,
    sign_out,
    sign_up,
    update_profile_section,
    update_user_profile,
)
from modules.dashboard_query import (
    current_tip_index,
    current_week_start,
    get_history_analytics,
    get_weekly_data,
    history_rows,
)
from modules.genai_advisor import generate_personalized_daily_tips
from modules.profile_gate import INCOMPLETE_PROFILE_MESSAGE, missing_profile_fields
from modules.risk_rules import evaluate_risk
from modules.scan_records import (
    delete_scan_record,
    get_scan_records_by_condition,
    get_user_scan_history,
    history_snapshot_stream,
    save_scan_record,
    update_user_health_tips,
)
from modules.schemas import AnalyzeFoodRequest, HealthPrediction, NewScanRecord
from modules.session_context import SessionContext, cache_profile, start_session

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = SECRET_KEY


# =====================================================================
# HELPERS
# =====================================================================

def login_required(view):
    """Reject anonymous requests; hand the view a SessionContext as first argument."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        ctx = SessionContext.from_session(session, request)
        if ctx is None:
            return jsonify({"error": "Unauthorized"}), 401
        return view(ctx, *args, **kwargs)
    return wrapper


def admin_required(view):
    """Like login_required, but the stored role must be admin."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        ctx = SessionContext.from_session(session, request)
        if ctx is None:
            return jsonify({"error": "Unauthorized"}), 401
        if not is_user_admin(db, ctx.user_id):
            return jsonify({"error": "Forbidden"}), 403
        return view(ctx, *args, **kwargs)
    return wrapper


def validation_errors(e):
    """JSON-safe summary of a pydantic ValidationError."""
    return [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in e.errors()
    ]


def incomplete_profile_response(missing):
    return jsonify({
        "error": "profile_incomplete",
        "message": INCOMPLETE_PROFILE_MESSAGE,
        "missing": missing,
    }), 409


def refresh_daily_tips(ctx):
    """Ask the backend to regenerate tips; run locally if it is offline. Best effort."""
    payload = {"user_id": ctx.user_id, "profile": ctx.profile}
    try:
        response = requests.post(f"{BACKEND_URL}/generate-tips", json=payload, timeout=BACKEND_TIMEOUT)
        if response.status_code == 200:
            return response.json()
        logger.warning("Tip generation failed on backend: %s", response.text[:300])
        return None
    except (requests.exceptions.ConnectionError, requests.exceptions.Timeout):
        logger.warning("FastAPI Offline. Generating tips locally.")
        return generate_personalized_daily_tips(db, ctx.user_id, ctx.profile)


# =====================================================================
# AUTH ROUTES
# =====================================================================

@app.route('/api/auth/signup', methods=['POST'])
def api_signup():
    """Register a new account and its default profile."""
    data = request.json or {}
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''
    name = (data.get('name') or '').strip()
    if not email or not password or not name:
        return jsonify({"error": "Name, email and password are required"}), 400

    try:
        user = sign_up(db, email, password, name, data.get('profile'))
    except Exception as e:
        create_auth_audit_log(db, email, "user.register", "Registration failed", status="error",
                              details={"error": str(e)}, client_info={"ip": request.remote_addr})
        return jsonify({"error": str(e)}), 400

    create_auth_audit_log(db, user.id, "user.register", "New user registered",
                          details={"email": email}, client_info={"ip": request.remote_addr})
    return jsonify({"status": "success", "user_id": user.id}), 201


@app.route('/api/auth/login', methods=['POST'])
def api_login():
    """Sign in with email and password; deactivated accounts are refused."""
    data = request.json or {}
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''
    client_info = {"ip": request.remote_addr, "userAgent": request.headers.get('User-Agent')}

    try:
        user = sign_in(db, email, password)
    except Exception as e:
        create_auth_audit_log(db, email or "anonymous", "user.login", "Failed login attempt",
                              status="error", details={"error": str(e)}, client_info=client_info)
        return jsonify({"error": "Invalid email or password"}), 401

    profile = get_user_profile(db, user.id)
    if profile is None:
        create_user_profile(db, user, name=(user.user_metadata or {}).get('full_name'))
        profile = get_user_profile(db, user.id)

    if not profile.get('active', True):
        sign_out(db)
        create_auth_audit_log(db, user.id, "user.login", "Login refused: account deactivated",
                              status="error", client_info=client_info)
        return jsonify({"error": "Account is deactivated"}), 403

    start_session(session, user.id, user.email, profile.get('name', ''), profile.get('role', 'user'), profile)
    create_auth_audit_log(db, user.id, "user.login", "User logged in", client_info=client_info)
    return jsonify({
        "status": "success",
        "user": {"id": user.id, "email": user.email, "name": profile.get('name', ''),
                 "role": profile.get('role', 'user')},
        "missing": missing_profile_fields(profile),
    })


@app.route('/api/auth/logout', methods=['POST'])
@login_required
def api_logout(ctx):
    create_auth_audit_log(db, ctx.user_id, "user.logout", "User logged out", client_info=ctx.client_info())
    try:
        sign_out(db)
    except Exception as e:
        logger.warning("Sign out failed, clearing session anyway: %s", e)
    session.clear()
    return jsonify({"status": "success"})


@app.route('/api/auth/reset-password', methods=['POST'])
def api_reset_password():
    email = ((request.json or {}).get('email') or '').strip()
    if not email:
        return jsonify({"error": "Email is required"}), 400
    try:
        reset_password(db, email)
    except Exception as e:
        create_auth_audit_log(db, email, "user.password_reset", "Password reset failed",
                              status="error", details={"error": str(e)})
        return jsonify({"error": str(e)}), 400

    create_auth_audit_log(db, email, "user.password_reset", "Password reset email sent")
    return jsonify({"status": "success"})


@app.route('/api/auth/me')
@login_required
def api_me(ctx):
    return jsonify({
        "id": ctx.user_id,
        "email": ctx.email,
        "name": ctx.name,
        "role": ctx.role,
        "profile": ctx.profile,
        "missing": missing_profile_fields(ctx.profile),
    })


# =====================================================================
# PROFILE ROUTES
# =====================================================================

def _profile_saved(ctx, before, profile, description):
    cache_profile(session, profile)
    create_profile_audit_log(db, ctx.user_id, "profile.update", description, client_info=ctx.client_info())
    old_condition = (before or {}).get('primaryCondition')
    if old_condition and old_condition != profile.get('primaryCondition'):
        create_health_audit_log(
            db, ctx.user_id, "health.condition_updated",
            f"Primary condition changed from {old_condition} to {profile.get('primaryCondition')}",
            client_info=ctx.client_info(),
        )
    return jsonify({"profile": profile, "missing": missing_profile_fields(profile)})


@app.route('/api/profile', methods=['GET'])
@login_required
def api_get_profile(ctx):
    try:
        profile = get_user_profile(db, ctx.user_id)
    except Exception as e:
        logger.error("PROFILE ERROR: %s", e)
        return jsonify({"error": str(e)}), 500
    if profile is None:
        return jsonify({"error": "Profile not found"}), 404
    cache_profile(session, profile)
    return jsonify({"profile": profile, "missing": missing_profile_fields(profile)})


@app.route('/api/profile', methods=['PUT'])
@login_required
def api_update_profile(ctx):
    data = request.json
    if not data:
        return jsonify({"error": "No data provided"}), 400
    try:
        profile = update_user_profile(db, ctx.user_id, data)
    except ValidationError as e:
        return jsonify({"error": "Invalid profile", "details": validation_errors(e)}), 400
    except Exception as e:
        logger.error("PROFILE ERROR: %s", e)
        create_profile_audit_log(db, ctx.user_id, "profile.update", "Profile update failed",
                                 status="error", details={"error": str(e)}, client_info=ctx.client_info())
        return jsonify({"status": "error", "error": str(e)}), 500
    return _profile_saved(ctx, ctx.profile, profile, "Profile updated")


@app.route('/api/profile/<section>', methods=['PATCH'])
@login_required
def api_update_profile_section(ctx, section):
    data = request.json
    if not data:
        return jsonify({"error": "No data provided"}), 400
    try:
        profile = update_profile_section(db, ctx.user_id, section, data)
    except KeyError:
        return jsonify({"error": f"Unknown profile section: {section}"}), 404
    except ValidationError as e:
        return jsonify({"error": "Invalid profile", "details": validation_errors(e)}), 400
    except Exception as e:
        logger.error("PROFILE ERROR: %s", e)
        create_profile_audit_log(db, ctx.user_id, "profile.update", f"Profile section {section} update failed",
                                 status="error", details={"error": str(e)}, client_info=ctx.client_info())
        return jsonify({"status": "error", "error": str(e)}), 500
    return _profile_saved(ctx, ctx.profile, profile, f"Profile section {section} updated")


# =====================================================================
# SCAN ROUTES
# =====================================================================

@app.route('/api/scan/analyze', methods=['POST'])
@login_required
def api_analyze(ctx):
    """Gate on the cached profile, then proxy to the analysis backend."""
    missing = missing_profile_fields(ctx.profile)
    if missing:
        return incomplete_profile_response(missing)

    data = request.json
    if not data:
        return jsonify({"error": "No data provided"}), 400
    try:
        food = AnalyzeFoodRequest.model_validate(data)
    except ValidationError as e:
        return jsonify({"error": "Invalid nutrition data", "details": validation_errors(e)}), 400

    payload = {"nutrition": food.to_document(), "profile": ctx.profile}
    prediction = None
    try:
        response = requests.post(f"{BACKEND_URL}/analyze-food", json=payload, timeout=BACKEND_TIMEOUT)
        if response.status_code == 409:
            return jsonify(response.json().get("detail", {})), 409
        if response.status_code == 200:
            prediction = HealthPrediction.model_validate(response.json()).to_document()
        else:
            logger.error("FastAPI Error %s: %s", response.status_code, response.text[:300])
    except (requests.exceptions.ConnectionError, requests.exceptions.Timeout):
        logger.warning("FastAPI Offline. Using Fallback.")
    except (ValueError, RecursionError, AttributeError) as e:
        logger.error("Unusable FastAPI response: %s", e)

    if prediction is not None:
        source = "model"
    else:
        prediction = evaluate_risk(food.nutrition(), food.condition).to_document()
        source = "fallback"

    create_scan_audit_log(db, ctx.user_id, "scan.analyzed", f"Analyzed {food.food_name or 'Unnamed Food'}",
                          details={"prediction": prediction.get("prediction"), "source": source},
                          client_info=ctx.client_info())
    return jsonify({"prediction": prediction, "source": source})


@app.route('/api/scan/save', methods=['POST'])
@login_required
def api_save_scan(ctx):
    """Save an analyzed scan, then refresh the user's tips."""
    data = request.json
    if not data:
        return jsonify({"status": "error", "error": "No data provided"}), 400
    try:
        scan = NewScanRecord.model_validate(data)
    except ValidationError as e:
        return jsonify({"status": "error", "error": "Invalid scan", "details": validation_errors(e)}), 400

    food_name = scan.food_name or 'Unnamed Food'
    try:
        record_id = save_scan_record(db, ctx.user_id, scan)
    except Exception as e:
        create_scan_audit_log(db, ctx.user_id, "scan.saved", f"Failed to save scan of {food_name}",
                              status="error", details={"error": str(e)}, client_info=ctx.client_info())
        return jsonify({"status": "error", "error": str(e)}), 500

    create_scan_audit_log(db, ctx.user_id, "scan.saved", f"Saved scan of {food_name}",
                          details={"recordId": record_id, "prediction": scan.prediction.prediction},
                          client_info=ctx.client_info())

    try:
        update_user_health_tips(db, ctx.user_id, scan.prediction.health_tip)
    except Exception as e:
        logger.error("TIPS ERROR: %s", e)
    refresh_daily_tips(ctx)

    return jsonify({"status": "success", "id": record_id, "message": f"Saved {food_name} to your history!"})


# =====================================================================
# HISTORY ROUTES
# =====================================================================

@app.route('/api/history', methods=['GET'])
@login_required
def api_history(ctx):
    condition = request.args.get('condition')
    try:
        if condition:
            records = get_scan_records_by_condition(db, ctx.user_id, condition)
        else:
            records = get_user_scan_history(db, ctx.user_id)
    except Exception as e:
        logger.error("HISTORY ERROR: %s", e)
        return jsonify({"error": str(e)}), 500
    return jsonify({"records": history_rows(records), "timezone": DISPLAY_TIMEZONE})


@app.route('/api/history/<record_id>', methods=['DELETE'])
@login_required
def api_delete_history(ctx, record_id):
    try:
        deleted = delete_scan_record(db, ctx.user_id, record_id)
    except Exception as e:
        create_scan_audit_log(db, ctx.user_id, "scan.deleted", f"Failed to delete scan {record_id}",
                              status="error", details={"error": str(e)}, client_info=ctx.client_info())
        return jsonify({"status": "error", "error": str(e)}), 500
    if not deleted:
        return jsonify({"error": "Scan not found"}), 404

    create_scan_audit_log(db, ctx.user_id, "scan.deleted", f"Deleted scan {record_id}",
                          client_info=ctx.client_info())
    return jsonify({"status": "success"})


@app.route('/api/history/analytics', methods=['GET'])
@login_required
def api_history_analytics(ctx):
    """Totals, charts and average nutrients; weekly breakdown for ?week_start=YYYY-MM-DD."""
    try:
        records = get_user_scan_history(db, ctx.user_id)
        now = datetime.now(timezone.utc)
        data = get_history_analytics(records, now)
        week_start = current_week_start(now)
        week_param = request.args.get('week_start')
        if week_param:
            week_start = datetime.strptime(week_param, '%Y-%m-%d').date()
            week_start = week_start - timedelta(days=week_start.weekday())
        data['weekly'] = get_weekly_data(records, week_start)
        return jsonify(data)
    except ValueError as e:
        return jsonify({"error": f"Invalid date: {e}"}), 400
    except Exception as e:
        logger.error("ANALYTICS ERROR: %s", e)
        return jsonify({"error": str(e)}), 500


@app.route('/api/history/stream')
@login_required
def api_history_stream(ctx):
    """Server-sent events: one message per change to the user's history."""
    user_id = ctx.user_id
    store = db

    def generate():
        for records in history_snapshot_stream(store, user_id, HISTORY_POLL_SECONDS):
            yield f"data: {json.dumps({'records': history_rows(records)})}\n\n"

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )


# =====================================================================
# TIPS ROUTES
# =====================================================================

@app.route('/api/tips', methods=['GET'])
@login_required
def api_tips(ctx):
    try:
        profile = get_user_profile(db, ctx.user_id) or {}
    except Exception as e:
        logger.error("TIPS ERROR: %s", e)
        return jsonify({"error": str(e)}), 500
    tips = profile.get('tips') or []
    return jsonify({
        "tips": tips,
        "current": current_tip_index(tips),
        "rotation_seconds": TIP_ROTATION_SECONDS,
    })


@app.route('/api/tips', methods=['POST'])
@login_required
def api_refresh_tips(ctx):
    result = refresh_daily_tips(ctx)
    if result is None:
        return jsonify({"error": "Tip generation unavailable"}), 503
    return jsonify(result)


# =====================================================================
# ADMIN API
# =====================================================================

@app.route('/admin/api/stats')
@admin_required
def admin_stats(ctx):
    try:
        return jsonify(get_user_stats(db))
    except Exception as e:
        return jsonify({"error": str(e)}), 500


@app.route('/admin/api/users')
@admin_required
def admin_users(ctx):
    try:
        return jsonify({"users": get_all_users(db)})
    except Exception as e:
        return jsonify({"error": str(e)}), 500


@app.route('/admin/api/admins')
@admin_required
def admin_admins(ctx):
    return jsonify({"users": get_admin_users(db)})


@app.route('/admin/api/users/<uid>/status', methods=['PATCH'])
@admin_required
def admin_user_status(ctx, uid):
    data = request.json or {}
    active = data.get('active')
    if not isinstance(active, bool):
        return jsonify({"error": "'active' must be true or false"}), 400
    try:
        set_user_active(db, uid, active, admin_id=ctx.user_id, client_info=ctx.client_info())
    except Exception as e:
        return jsonify({"status": "error", "error": str(e)}), 500
    return jsonify({"status": "success", "id": uid, "active": active})


@app.route('/admin/api/users/<uid>/role', methods=['PATCH'])
@admin_required
def admin_user_role(ctx, uid):
    role = (request.json or {}).get('role')
    try:
        updated = update_user_role(db, uid, role, admin_id=ctx.user_id, client_info=ctx.client_info())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not updated:
        return jsonify({"status": "error", "error": "Role update failed"}), 500
    return jsonify({"status": "success", "id": uid, "role": role})


@app.route('/admin/api/audit-logs')
@admin_required
def admin_audit_logs(ctx):
    categories = request.args.getlist('category')
    try:
        limit = int(request.args.get('limit', 100))
        return jsonify({"logs": list_audit_logs(db, categories, limit)})
    except ValueError:
        return jsonify({"error": "Invalid limit"}), 400
    except Exception as e:
        return jsonify({"error": str(e)}), 500


@app.route('/health')
def health():
    return jsonify({"status": "ok", "database": db is not None})


# =====================================================================
# MAIN ENTRY POINT
# =====================================================================

if __name__ == '__main__':
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    is_production = os.getenv("FLASK_ENV") == "production"

    if is_production:
        # Docker Compose starts the backend in its own container
        logger.info("Starting Flask Frontend on port 5000 (production)...")
        app.run(host="0.0.0.0", port=5000, use_reloader=False)
    else:
        logger.info("Starting FastAPI Backend on port 8000...")
        backend_process = subprocess.Popen(
            ["uvicorn", "fastapi_backend:app", "--host", "127.0.0.1", "--port", "8000"]
        )

        try:
            logger.info("Starting Flask Frontend on port 5000...")
            app.run(debug=True, port=5000, use_reloader=False)
        finally:
            logger.info("Shutting down backend...")
            backend_process.terminate()
