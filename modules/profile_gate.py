"""Precondition check run before any scan is sent for analysis."""
import logging

from pydantic import ValidationError

from modules.schemas import UserProfile

logger = logging.getLogger(__name__)

INCOMPLETE_PROFILE_MESSAGE = "Please complete your health profile first."


def missing_profile_fields(profile):
    """
    Dotted paths of the profile fields that block analysis.

    The profile must validate as a full UserProfile and carry the status
    block for its primary condition (blood sugar for diabetes, blood
    pressure for hypertension, both for "both").
    """
    if not profile:
        return ["profile"]

    try:
        validated = UserProfile.model_validate(profile)
    except ValidationError as e:
        missing = []
        for error in e.errors():
            path = ".".join(str(part) for part in error["loc"]) or "profile"
            if path not in missing:
                missing.append(path)
        return missing

    missing = []
    if validated.has_diabetes and validated.diabetes_status is None:
        missing.append("diabetesStatus")
    if validated.has_hypertension and validated.hypertension_status is None:
        missing.append("hypertensionStatus")
    return missing


def is_profile_complete(profile):
    missing = missing_profile_fields(profile)
    if missing:
        logger.info("Profile incomplete, missing: %s", ", ".join(missing))
        return False
    return True
