"""
Supabase Auth wrappers and the user profile row (users table).

The users row is keyed by the auth user id and holds the health profile,
the current tip list, the role and the active flag.
"""
import logging
from datetime import datetime, timezone

from config import USERS_TABLE
from modules.profile_gate import is_profile_complete
from modules.schemas import PROFILE_SECTIONS, UserProfile
from modules.tips import DEFAULT_PROFILE_TIPS, as_tip_objects

logger = logging.getLogger(__name__)

DEFAULT_DEMOGRAPHICS = {
    "biologicalSex": "Male",
    "age": 18,
    "heightCm": 170,
    "weightKg": 70,
    "activityLevel": "Sedentary",
}


def _now():
    return datetime.now(timezone.utc).isoformat()


# =====================================================================
# AUTH
# =====================================================================

def sign_up(db, email, password, name, profile_data=None):
    """Register, create the profile row, then sign out again."""
    try:
        response = db.auth.sign_up({
            "email": email,
            "password": password,
            "options": {"data": {"full_name": name}},
        })
        user = response.user
        if user is None:
            raise ValueError("Sign up returned no user")

        create_user_profile(db, user, name=name, profile_data=profile_data)
        db.auth.sign_out()
        logger.info("Registered user %s", user.id)
        return user
    except Exception as e:
        logger.error("Error signing up with email: %s", e)
        raise


def sign_in(db, email, password):
    try:
        response = db.auth.sign_in_with_password({"email": email, "password": password})
        return response.user
    except Exception as e:
        logger.error("Error signing in with email: %s", e)
        raise


def sign_out(db):
    try:
        db.auth.sign_out()
    except Exception as e:
        logger.error("Error signing out: %s", e)
        raise


def reset_password(db, email):
    try:
        db.auth.reset_password_for_email(email)
    except Exception as e:
        logger.error("Error sending password reset email: %s", e)
        raise


# =====================================================================
# PROFILE ROW
# =====================================================================

def get_user_profile(db, user_id):
    response = db.table(USERS_TABLE).select("*").eq("id", user_id).execute()
    return response.data[0] if response.data else None


def create_user_profile(db, user, name=None, profile_data=None):
    """
    Insert the default profile row for a new auth user.

    Does nothing and returns False when the row already exists.
    """
    if get_user_profile(db, user.id):
        return False

    profile_data = profile_data or {}
    other = profile_data.get("otherConditions") or {}
    treatment = profile_data.get("treatmentManagement") or {}
    now = _now()

    document = {
        "id": user.id,
        "uid": user.id,
        "name": name or profile_data.get("name") or "",
        "email": user.email or profile_data.get("email") or "",
        "primaryCondition": profile_data.get("primaryCondition") or "diabetes",
        "otherConditions": {
            "kidneyDisease": bool(other.get("kidneyDisease", False)),
            "heartDisease": bool(other.get("heartDisease", False)),
        },
        "treatmentManagement": {
            "diabetesMedication": {
                "medications": (treatment.get("diabetesMedication") or {}).get("medications", []),
            },
            "hypertensionMedication": {
                "medications": (treatment.get("hypertensionMedication") or {}).get("medications", []),
            },
        },
        "demographics": {**DEFAULT_DEMOGRAPHICS, **(profile_data.get("demographics") or {})},
        "tips": as_tip_objects(DEFAULT_PROFILE_TIPS),
        "role": "user",
        "active": True,
        "isProfileComplete": False,
        "createdAt": now,
        "updatedAt": now,
    }
    # condition status only when the user actually entered it
    for key in ("diabetesStatus", "hypertensionStatus"):
        if profile_data.get(key):
            document[key] = profile_data[key]

    try:
        db.table(USERS_TABLE).insert(document).execute()
    except Exception as e:
        logger.error("Error creating user profile: %s", e)
        raise
    logger.info("Created profile for user %s", user.id)
    return True


def update_user_profile(db, user_id, profile):
    """
    Merge `profile` onto the stored row, validate and save.

    Raises pydantic.ValidationError when the merged profile is invalid.
    Returns the stored row after the update.
    """
    existing = get_user_profile(db, user_id) or {}
    merged = {**existing, **profile}
    validated = UserProfile.model_validate(merged)

    document = validated.to_document()
    document["isProfileComplete"] = is_profile_complete(document)
    document["updatedAt"] = _now()

    try:
        db.table(USERS_TABLE).update(document).eq("id", user_id).execute()
    except Exception as e:
        logger.error("Error updating user profile: %s", e)
        raise
    return get_user_profile(db, user_id)


def update_profile_section(db, user_id, section, data):
    """Validate one form section and merge it onto the profile. KeyError for unknown sections."""
    key, model = PROFILE_SECTIONS[section]
    validated = model.model_validate(data).to_document()
    patch = validated if key is None else {key: validated}
    return update_user_profile(db, user_id, patch)
