import pytest
from pydantic import ValidationError

from modules.schemas import (
    AnalyzeFoodRequest,
    AuditLogEntry,
    HealthPrediction,
    NutritionData,
    ScanRecord,
    UserProfile,
    SCHEMA_VERSION,
)


def test_scan_record_round_trip_keeps_prediction(make_scan_row):
    row = make_scan_row(prediction="Risky")
    record = ScanRecord.model_validate(row)
    again = ScanRecord.model_validate(record.to_document())

    assert again.prediction == record.prediction
    assert again.prediction.reasoning == "because"
    assert again.to_document()["prediction"] == row["prediction"]
    assert again.timestamp == record.timestamp


def test_v1_scan_with_string_prediction_is_migrated():
    legacy = {
        "id": "old-1",
        "userId": "user-1",
        "createdAt": "2024-01-02T03:04:05+00:00",
        "nutrition": {"calories": 100, "carbohydrates": 10, "protein": 1, "fat": 1,
                      "sodium": 50, "fiber": 1, "sugar": 7},
        "prediction": "risky",
        "reasoning": "  too sweet ",
    }
    record = ScanRecord.model_validate(legacy)

    assert record.schema_version == SCHEMA_VERSION
    assert record.condition == "diabetes"
    assert record.nutrition_data.total_sugars == 7
    assert record.prediction.prediction == "Risky"
    assert record.prediction.reasoning == "too sweet"
    assert len(record.prediction.health_tip) == 5


def test_v1_nutrition_without_sugar_defaults_to_zero():
    data = NutritionData.model_validate({"calories": 1, "carbohydrates": 1, "protein": 1,
                                         "fat": 1, "sodium": 1, "fiber": 1})
    assert data.total_sugars == 0
    assert data.to_document()["schemaVersion"] == SCHEMA_VERSION


def test_current_version_nutrition_requires_total_sugars():
    with pytest.raises(ValidationError):
        NutritionData.model_validate({"schemaVersion": 2, "calories": 1, "carbohydrates": 1,
                                      "protein": 1, "fat": 1, "sodium": 1, "fiber": 1})


def test_nutrition_ranges_enforced(nutrition):
    nutrition["sodium"] = 20000
    with pytest.raises(ValidationError):
        NutritionData.model_validate(nutrition)


def test_prediction_needs_exactly_five_tips():
    with pytest.raises(ValidationError):
        HealthPrediction.model_validate({"prediction": "Safe", "reasoning": "ok",
                                         "healthTip": [{"content": "one"}]})


def test_analyze_request_splits_nutrition(nutrition):
    request = AnalyzeFoodRequest.model_validate({**nutrition, "condition": "both", "foodName": "Chips"})
    bare = request.nutrition()
    assert isinstance(bare, NutritionData)
    assert not isinstance(bare, AnalyzeFoodRequest)
    assert bare.sodium == 200
    assert request.food_name == "Chips"


def test_profile_validation(complete_profile):
    profile = UserProfile.model_validate(complete_profile)
    assert profile.has_diabetes and not profile.has_hypertension
    assert round(profile.demographics.bmi, 1) == 25.0

    complete_profile["email"] = "not-an-email"
    with pytest.raises(ValidationError):
        UserProfile.model_validate(complete_profile)


def test_unknown_medication_rejected(complete_profile):
    complete_profile["treatmentManagement"]["diabetesMedication"]["medications"] = ["Aspirin"]
    with pytest.raises(ValidationError):
        UserProfile.model_validate(complete_profile)


def test_audit_severity_defaults_from_status():
    ok = AuditLogEntry(user_id="u", category="auth", action="user.login", description="in")
    failed = AuditLogEntry(user_id="u", category="auth", action="user.login", description="in", status="error")
    warned = AuditLogEntry(user_id="u", category="system", action="system.warning", description="w",
                           severity="warning")
    assert ok.severity == "info"
    assert failed.severity == "error"
    assert warned.severity == "warning"
