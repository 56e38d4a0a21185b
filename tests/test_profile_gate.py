from modules.profile_gate import is_profile_complete, missing_profile_fields


def test_complete_profile_passes(complete_profile):
    assert missing_profile_fields(complete_profile) == []
    assert is_profile_complete(complete_profile)


def test_empty_profile_blocks():
    assert missing_profile_fields({}) == ["profile"]
    assert missing_profile_fields(None) == ["profile"]


def test_hypertension_without_blood_pressure_blocks(hypertension_profile_without_bp):
    assert missing_profile_fields(hypertension_profile_without_bp) == ["hypertensionStatus"]
    assert not is_profile_complete(hypertension_profile_without_bp)


def test_both_needs_both_statuses(complete_profile):
    complete_profile["primaryCondition"] = "both"
    assert missing_profile_fields(complete_profile) == ["hypertensionStatus"]

    complete_profile["hypertensionStatus"] = {"bloodPressure": {"systolic": 130, "diastolic": 85}}
    assert missing_profile_fields(complete_profile) == []


def test_invalid_fields_reported_by_path(complete_profile):
    complete_profile["name"] = "A"
    complete_profile["demographics"]["age"] = 12
    missing = missing_profile_fields(complete_profile)
    assert "name" in missing
    assert "demographics.age" in missing


def test_extra_stored_fields_are_ignored(complete_profile):
    complete_profile.update({"tips": [], "role": "user", "active": True, "uid": "x"})
    assert is_profile_complete(complete_profile)
