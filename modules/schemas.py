"""
Record schemas for profiles, scans, predictions and audit entries.

Documents are stored with camelCase keys, attributes are snake_case.
Scan records and nutrition blocks are versioned; older documents are
migrated forward by the `before` validators when they are read back.
"""
import logging
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

from modules.tips import default_health_tips

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2
TIP_COUNT = 5

HealthCondition = Literal["diabetes", "hypertension", "both"]
PredictionLabel = Literal["Safe", "Risky"]

DiabetesMedication = Literal[
    "None",
    "Metformin",
    "Sulfonylureas",
    "DPP-4 inhibitors",
    "SGLT2 inhibitors",
    "GLP-1 receptor agonists",
    "Insulin - Short-acting",
    "Insulin - Long-acting",
    "Insulin - Both",
    "Other",
]

HypertensionMedication = Literal[
    "None",
    "ACE inhibitors",
    "ARBs",
    "Beta blockers",
    "Calcium channel blockers",
    "Diuretics",
    "Alpha blockers",
    "Vasodilators",
    "Other",
]

AuditCategory = Literal["auth", "profile", "health", "scan", "system"]
AuditAction = Literal[
    "user.login",
    "user.logout",
    "user.register",
    "user.password_reset",
    "profile.create",
    "profile.update",
    "profile.delete",
    "health.tip_generated",
    "health.condition_updated",
    "scan.created",
    "scan.analyzed",
    "scan.saved",
    "scan.deleted",
    "admin.user_status",
    "admin.user_role",
    "system.error",
    "system.warning",
]


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_document(self):
        """Dump as a store document (camelCase keys, JSON-safe values)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# =====================================================================
# MIGRATIONS
# =====================================================================

def _nutrition_v1_to_v2(data):
    # v1 labels carried a single `sugar` (sometimes `sugars`) field
    for legacy in ("sugar", "sugars"):
        if legacy in data:
            value = data.pop(legacy)
            data.setdefault("totalSugars", value)
    data.setdefault("totalSugars", 0)
    return data


def _scan_v1_to_v2(data):
    if "timestamp" not in data:
        data["timestamp"] = data.get("createdAt") or data.get("date")
    if "nutritionData" not in data and "nutrition" in data:
        data["nutritionData"] = data.pop("nutrition")
    data.setdefault("condition", "diabetes")

    prediction = data.get("prediction")
    if isinstance(prediction, str) or prediction is None:
        label = "Risky" if str(prediction or "safe").lower() == "risky" else "Safe"
        data["prediction"] = {
            "prediction": label,
            "reasoning": str(data.pop("reasoning", "") or "").strip(),
            "healthTip": default_health_tips(label == "Risky"),
        }
    elif isinstance(prediction, dict):
        prediction = dict(prediction)
        label = "Risky" if str(prediction.get("prediction", "")).lower() == "risky" else "Safe"
        prediction["prediction"] = label
        prediction.setdefault("reasoning", "")
        if len(prediction.get("healthTip") or []) != TIP_COUNT:
            prediction["healthTip"] = default_health_tips(label == "Risky")
        data["prediction"] = prediction
    return data


NUTRITION_MIGRATIONS = {1: _nutrition_v1_to_v2}
SCAN_MIGRATIONS = {1: _scan_v1_to_v2}


def apply_migrations(data, migrations):
    """Run every registered step from the document's version up to SCHEMA_VERSION."""
    if not isinstance(data, dict):
        return data
    data = dict(data)
    version = data.pop("schemaVersion", data.pop("schema_version", 1)) or 1
    start = version
    while version < SCHEMA_VERSION:
        step = migrations.get(version)
        if step is not None:
            data = step(data)
        version += 1
    if start != version:
        logger.debug("Migrated document from v%s to v%s", start, version)
    data["schemaVersion"] = version
    return data


# =====================================================================
# NUTRITION & PREDICTION
# =====================================================================

class NutritionData(Record):
    schema_version: int = SCHEMA_VERSION
    calories: float = Field(ge=0, le=5000)
    carbohydrates: float = Field(ge=0, le=500)
    protein: float = Field(ge=0, le=200)
    fat: float = Field(ge=0, le=200)
    sodium: float = Field(ge=0, le=10000)
    fiber: float = Field(ge=0, le=100)
    total_sugars: float = Field(ge=0, le=500)
    added_sugars: Optional[float] = Field(default=None, ge=0, le=500)
    saturated_fat: Optional[float] = Field(default=None, ge=0, le=200)
    trans_fat: Optional[float] = Field(default=None, ge=0, le=50)
    potassium: Optional[float] = Field(default=None, ge=0, le=20000)
    cholesterol: Optional[float] = Field(default=None, ge=0, le=2000)
    serving_size: Optional[str] = None
    servings_per_container: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _migrate(cls, data):
        return apply_migrations(data, NUTRITION_MIGRATIONS)


class HealthTip(Record):
    content: str


class HealthPrediction(Record):
    prediction: PredictionLabel
    reasoning: str
    health_tip: List[HealthTip] = Field(min_length=TIP_COUNT, max_length=TIP_COUNT)

    @property
    def is_risky(self):
        return self.prediction == "Risky"


class AnalyzeFoodRequest(NutritionData):
    condition: HealthCondition
    food_name: Optional[str] = None

    def nutrition(self):
        """The bare nutrient block, without the request-only fields."""
        return NutritionData.model_validate(self.model_dump(include=set(NutritionData.model_fields)))


# =====================================================================
# USER PROFILE (one view-model per form section)
# =====================================================================

class BasicInfo(Record):
    name: str = Field(min_length=2)
    email: EmailStr
    primary_condition: HealthCondition


class OtherConditions(Record):
    kidney_disease: bool = False
    heart_disease: bool = False


class DiabetesStatus(Record):
    blood_sugar: float = Field(ge=0, le=1000)


class BloodPressure(Record):
    systolic: float = Field(ge=50, le=300)
    diastolic: float = Field(ge=30, le=200)


class HypertensionStatus(Record):
    blood_pressure: BloodPressure


class DiabetesMedicationPlan(Record):
    medications: List[DiabetesMedication] = Field(default_factory=list)


class HypertensionMedicationPlan(Record):
    medications: List[HypertensionMedication] = Field(default_factory=list)


class TreatmentManagement(Record):
    diabetes_medication: DiabetesMedicationPlan = Field(default_factory=DiabetesMedicationPlan)
    hypertension_medication: HypertensionMedicationPlan = Field(default_factory=HypertensionMedicationPlan)


class Demographics(Record):
    biological_sex: Literal["Male", "Female", "Other"]
    age: int = Field(ge=18, le=120)
    height_cm: float = Field(ge=50, le=250)
    weight_kg: float = Field(ge=20, le=300)
    activity_level: Literal["Sedentary", "Lightly Active", "Moderate", "Very Active"]

    @property
    def bmi(self):
        height_m = self.height_cm / 100
        return self.weight_kg / (height_m * height_m)


class UserProfile(BasicInfo):
    other_conditions: OtherConditions
    diabetes_status: Optional[DiabetesStatus] = None
    hypertension_status: Optional[HypertensionStatus] = None
    treatment_management: TreatmentManagement
    demographics: Demographics

    @property
    def has_diabetes(self):
        return self.primary_condition in ("diabetes", "both")

    @property
    def has_hypertension(self):
        return self.primary_condition in ("hypertension", "both")


# Editable profile sections: URL slug -> (document key, view-model).
# A key of None means the section's fields live at the top level.
PROFILE_SECTIONS = {
    "basic": (None, BasicInfo),
    "other-conditions": ("otherConditions", OtherConditions),
    "diabetes-status": ("diabetesStatus", DiabetesStatus),
    "hypertension-status": ("hypertensionStatus", HypertensionStatus),
    "treatment": ("treatmentManagement", TreatmentManagement),
    "demographics": ("demographics", Demographics),
}


# =====================================================================
# SCAN RECORDS
# =====================================================================

class NewScanRecord(Record):
    food_name: Optional[str] = None
    nutrition_data: NutritionData
    condition: HealthCondition
    prediction: HealthPrediction


class ScanRecord(NewScanRecord):
    schema_version: int = SCHEMA_VERSION
    id: str
    user_id: str
    timestamp: datetime

    @model_validator(mode="before")
    @classmethod
    def _migrate(cls, data):
        return apply_migrations(data, SCAN_MIGRATIONS)


# =====================================================================
# AUDIT LOG
# =====================================================================

class AuditLogEntry(Record):
    user_id: str
    category: AuditCategory
    action: AuditAction
    description: str
    status: Literal["success", "error"] = "success"
    severity: Optional[Literal["info", "warning", "error"]] = None
    metadata: dict = Field(default_factory=dict)
    timestamp: Optional[datetime] = None

    @model_validator(mode="after")
    def _default_severity(self):
        if self.severity is None:
            self.severity = "error" if self.status == "error" else "info"
        return self
