"""
Threshold rules for the local Safe/Risky evaluator.

A single rule table drives both `evaluate_risk` (used whenever the model
is unreachable or returns nothing usable) and the reference thresholds
quoted in the model prompt, so the two can never disagree.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from modules.schemas import HealthPrediction, NutritionData
from modules.tips import SAFE_EVALUATOR_TIPS, as_tip_objects, risky_evaluator_tips

logger = logging.getLogger(__name__)

# --- Constants ---
SODIUM_DV_LIMIT_MG = 460            # 20% of the daily value per serving
CARBS_MEAL_LIMIT_G = 60             # upper end of the 30-60g meal range
CARBS_SNACK_LIMIT_G = 30            # upper end of the 15-30g snack range
ADDED_SUGAR_LIMIT_G = 10
SAT_FAT_CALORIE_PCT = 10
HYPERTENSION_DAILY_SODIUM_MG = 1500
HYPERTENSION_MEAL_SODIUM_MG = HYPERTENSION_DAILY_SODIUM_MG / 3
KCAL_PER_GRAM_FAT = 9

ALL_CONDITIONS = ("diabetes", "hypertension", "both")
DIABETES_CONDITIONS = ("diabetes", "both")
HYPERTENSION_CONDITIONS = ("hypertension", "both")


def _fmt(value):
    return f"{value:g}"


@dataclass(frozen=True)
class RiskRule:
    """One threshold. `check` returns a reason string when it fires, else None."""
    name: str
    conditions: Tuple[str, ...]
    threshold: str
    check: Callable[[NutritionData], Optional[str]]
    flags_risk: bool = True


def _sodium_dv(n):
    if n.sodium >= SODIUM_DV_LIMIT_MG:
        return f"High sodium content ({_fmt(n.sodium)}mg) exceeds 20% DV per serving"
    return None


def _carbs_meal(n):
    if n.carbohydrates > CARBS_MEAL_LIMIT_G:
        return (f"Carbohydrate content ({_fmt(n.carbohydrates)}g) exceeds recommended "
                f"meal range of 30-{CARBS_MEAL_LIMIT_G}g")
    return None


def _carbs_snack(n):
    is_snack = "snack" in (n.serving_size or "").lower()
    if is_snack and CARBS_SNACK_LIMIT_G < n.carbohydrates <= CARBS_MEAL_LIMIT_G:
        return (f"Carbohydrate content ({_fmt(n.carbohydrates)}g) exceeds recommended "
                f"snack range of 15-{CARBS_SNACK_LIMIT_G}g")
    return None


def _added_sugar(n):
    if n.added_sugars and n.added_sugars > ADDED_SUGAR_LIMIT_G:
        return (f"High added sugars ({_fmt(n.added_sugars)}g) exceeds "
                f"{ADDED_SUGAR_LIMIT_G}g per serving threshold")
    return None


def _saturated_fat(n):
    if not n.saturated_fat:
        return None
    if not n.calories:
        # share of calories is undefined for a zero-calorie label
        return None
    share = n.saturated_fat * KCAL_PER_GRAM_FAT / n.calories * 100
    if share > SAT_FAT_CALORIE_PCT:
        return f"Saturated fat ({_fmt(n.saturated_fat)}g) exceeds {SAT_FAT_CALORIE_PCT}% of calories"
    return None


def _sodium_meal_hypertension(n):
    if n.sodium > HYPERTENSION_MEAL_SODIUM_MG:
        return f"Sodium content ({_fmt(n.sodium)}mg) exceeds recommended per-meal limit for hypertension"
    return None


def _potassium_note(n):
    if n.potassium:
        return (f"Contains {_fmt(n.potassium)}mg potassium "
                f"(beneficial for blood pressure control if no kidney issues)")
    return None


RISK_RULES = [
    RiskRule("sodium_dv", ALL_CONDITIONS,
             f"Sodium at or above {SODIUM_DV_LIMIT_MG} mg per serving (20% DV) is risky",
             _sodium_dv),
    RiskRule("carbs_meal", DIABETES_CONDITIONS,
             f"Carbohydrates above {CARBS_MEAL_LIMIT_G} g per meal are risky",
             _carbs_meal),
    RiskRule("carbs_snack", DIABETES_CONDITIONS,
             f"Carbohydrates above {CARBS_SNACK_LIMIT_G} g are risky when the serving is a snack",
             _carbs_snack),
    RiskRule("added_sugar", ALL_CONDITIONS,
             f"Added sugars above {ADDED_SUGAR_LIMIT_G} g per serving are risky",
             _added_sugar),
    RiskRule("saturated_fat", ALL_CONDITIONS,
             f"Saturated fat supplying more than {SAT_FAT_CALORIE_PCT}% of calories is risky",
             _saturated_fat),
    RiskRule("sodium_meal_hypertension", HYPERTENSION_CONDITIONS,
             f"Sodium above {HYPERTENSION_MEAL_SODIUM_MG:g} mg per meal "
             f"(a third of the {HYPERTENSION_DAILY_SODIUM_MG} mg daily limit) is risky",
             _sodium_meal_hypertension),
    RiskRule("potassium_note", ALL_CONDITIONS,
             "Potassium is beneficial for blood pressure unless kidney disease is present",
             _potassium_note, flags_risk=False),
]


def rules_for(condition):
    return [rule for rule in RISK_RULES if condition in rule.conditions]


def describe_thresholds(condition):
    """Bullet list of the thresholds that apply to `condition`, for prompts."""
    return "\n".join(f"- {rule.threshold}" for rule in rules_for(condition))


def evaluate_risk(nutrition, condition):
    """Classify a label as Safe or Risky from the fixed thresholds alone."""
    if not isinstance(nutrition, NutritionData):
        nutrition = NutritionData.model_validate(nutrition)

    reasons = []
    fired = []
    for rule in rules_for(condition):
        reason = rule.check(nutrition)
        if reason is None:
            continue
        reasons.append(reason)
        if rule.flags_risk:
            fired.append(rule.name)

    if fired:
        logger.info("Fallback evaluator flagged risk: %s", ", ".join(fired))
        return HealthPrediction(
            prediction="Risky",
            reasoning=". ".join(reasons),
            health_tip=as_tip_objects(risky_evaluator_tips(condition)),
        )

    summary = ". ".join(reasons) if reasons else "all nutrient levels acceptable"
    return HealthPrediction(
        prediction="Safe",
        reasoning=f"Within recommended limits: {summary}",
        health_tip=as_tip_objects(SAFE_EVALUATOR_TIPS),
    )
