"""Food safety verdicts and daily tips from a local text-generation model."""
import json
import logging

import requests
from pydantic import ValidationError

from config import LLM_URL, LLM_MODEL, LLM_TIMEOUT, TIPS_TIMEOUT
from modules.audit_log import create_health_audit_log
from modules.dashboard_query import count_verdicts
from modules.llm_parser import extract_output_text, parse_llm_response, parse_tips_from_llm
from modules.risk_rules import describe_thresholds, evaluate_risk
from modules.scan_records import get_todays_scans, update_user_health_tips
from modules.schemas import NutritionData, UserProfile, TIP_COUNT
from modules.tips import DEFAULT_PROFILE_TIPS, as_tip_objects

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a nutrition and health expert."


def _known(value, unit=""):
    if value is None:
        return "unknown"
    return f"{value:g}{unit}" if isinstance(value, (int, float)) else f"{value}{unit}"


def _medications(plan):
    return ", ".join(plan.medications) or "None"


def _yes_no(flag):
    return "Yes" if flag else "No"


# =====================================================================
# PROMPTS
# =====================================================================

def build_prompt(nutrition, profile, condition, food_name=None):
    """Verdict prompt: full profile, label values and the reference thresholds."""
    demo = profile.demographics
    treatment = profile.treatment_management

    sections = [
        'Analyze if the following food is "Safe" or "Risky" for the user based on their full medical profile.',
        "",
        "### USER PROFILE",
        "Demographics:",
        f"- Name: {profile.name}",
        f"- Age: {demo.age} years",
        f"- Sex: {demo.biological_sex}",
        f"- Height: {_known(demo.height_cm)} cm",
        f"- Weight: {_known(demo.weight_kg)} kg",
        f"- BMI: {demo.bmi:.1f}",
        f"- Activity Level: {demo.activity_level}",
        "",
        "Medical Conditions:",
        f"- Primary Condition: {profile.primary_condition}",
        f"- Kidney Disease: {_yes_no(profile.other_conditions.kidney_disease)}",
        f"- Heart Disease: {_yes_no(profile.other_conditions.heart_disease)}",
    ]

    if profile.has_diabetes:
        blood_sugar = profile.diabetes_status.blood_sugar if profile.diabetes_status else None
        sections += [
            "",
            "Diabetes Management:",
            f"- Blood Sugar Level: {_known(blood_sugar)} mg/dL",
            f"- Medications: {_medications(treatment.diabetes_medication)}",
        ]

    if profile.has_hypertension:
        bp = profile.hypertension_status.blood_pressure if profile.hypertension_status else None
        reading = f"{_known(bp.systolic)}/{_known(bp.diastolic)}" if bp else "unknown"
        sections += [
            "",
            "Hypertension Management:",
            f"- Blood Pressure: {reading} mmHg",
            f"- Medications: {_medications(treatment.hypertension_medication)}",
        ]

    sections += [
        "",
        "### FOOD NUTRITION",
        f"- Food Name: {food_name or 'Unnamed Food'}",
        f"- Calories: {_known(nutrition.calories)} kcal",
        f"- Carbohydrates: {_known(nutrition.carbohydrates)} g",
        f"- Protein: {_known(nutrition.protein)} g",
        f"- Fat: {_known(nutrition.fat)} g",
        f"- Sodium: {_known(nutrition.sodium)} mg",
        f"- Fiber: {_known(nutrition.fiber)} g",
        f"- Total Sugars: {_known(nutrition.total_sugars)} g",
        f"- Added Sugars: {_known(nutrition.added_sugars)} g",
        f"- Saturated Fat: {_known(nutrition.saturated_fat)} g",
        f"- Trans Fat: {_known(nutrition.trans_fat)} g",
        f"- Potassium: {_known(nutrition.potassium)} mg",
        f"- Cholesterol: {_known(nutrition.cholesterol)} mg",
        f"- Serving Size: {nutrition.serving_size or 'unspecified'}",
        f"- Servings / Container: {_known(nutrition.servings_per_container)}",
        "",
        f"### REFERENCE THRESHOLDS ({condition})",
        describe_thresholds(condition),
        "",
        "### TASK",
        "Determine if this food is **Safe** or **Risky** for this user. Base your decision on:",
        "1. Nutritional content vs medical conditions and the reference thresholds",
        "2. Patient's current health metrics (BP, blood sugar)",
        "3. Overall health status (BMI, activity level)",
        "4. Medication interactions if relevant",
        "",
        "Respond **strictly in JSON** format like this:",
        "",
        '{',
        '  "prediction": "Safe" | "Risky",',
        '  "reasoning": "How this food impacts the user given their profile, medications and current health status.",',
        f'  "healthTip": [{{"content": "..."}}]  // exactly {TIP_COUNT} short tips',
        '}',
    ]
    return "\n".join(sections)


def build_tips_prompt(profile, todays_scans, counts):
    """Daily tips prompt from the profile and today's verdict counts."""
    if profile is not None:
        demo = profile.demographics
        treatment = profile.treatment_management
        profile_lines = [
            f"Name: {profile.name}",
            f"- Age: {demo.age}",
            f"- Sex: {demo.biological_sex}",
            f"- Height: {_known(demo.height_cm)} cm",
            f"- Weight: {_known(demo.weight_kg)} kg",
            f"- BMI: {demo.bmi:.1f}",
            f"- Activity Level: {demo.activity_level}",
            "",
            "Medical Conditions:",
            f"- Primary Condition: {profile.primary_condition}",
            f"- Other Conditions: KidneyDisease={_yes_no(profile.other_conditions.kidney_disease)}, "
            f"HeartDisease={_yes_no(profile.other_conditions.heart_disease)}",
            "",
            "Medications:",
            f"- Diabetes meds: {_medications(treatment.diabetes_medication)}",
            f"- Hypertension meds: {_medications(treatment.hypertension_medication)}",
        ]
    else:
        profile_lines = ["Name: unknown", "- Primary Condition: unknown"]

    sample = [
        f"- {scan.food_name or 'Unnamed Food'}: {scan.prediction.prediction}"
        + (f" ({scan.prediction.reasoning[:120]})" if scan.prediction.reasoning else "")
        for scan in todays_scans[:5]
    ] or ["- (no scans)"]

    lines = [
        "You are a practical, evidence-based nutrition and behavior-change coach.",
        "",
        f"Provide exactly {TIP_COUNT} short (one-sentence) actionable health tips for this user based on "
        "their profile and today's food scans. Do NOT include explanations or extra commentary; respond "
        f'strictly with a JSON array of {TIP_COUNT} objects in the form [{{"content":"..."}}, ...].',
        "",
        "### USER PROFILE",
        *profile_lines,
        "",
        "### TODAY'S SCANS SUMMARY",
        f"Total scans: {len(todays_scans)}",
        f"- Safe: {counts['safe']}",
        f"- Risky: {counts['risky']}",
        *sample,
        "",
        "### TASK",
        f"Create {TIP_COUNT} concise, actionable tips the user can apply today to reduce risk and improve "
        "dietary choices. Each tip should be personalized to the profile and today's scan summary.",
        "",
        'Respond strictly as JSON: [{"content":"tip 1"}, {"content":"tip 2"}, {"content":"tip 3"}, '
        '{"content":"tip 4"}, {"content":"tip 5"}]',
    ]
    return "\n".join(lines)


def build_request_body(prompt, metadata, extra_messages=()):
    return {
        "model": LLM_MODEL,
        "prompt": prompt,
        "metadata": metadata,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
            *extra_messages,
        ],
        "stream": False,
    }


# =====================================================================
# ANALYSIS
# =====================================================================

def analyze_food(nutrition, profile, condition, food_name=None):
    """
    Safe/Risky verdict for one label. Never raises.

    Any transport failure (connection error, timeout, non-2xx status,
    non-JSON body) or an empty model answer falls back to the local
    threshold evaluator; otherwise the model text is parsed.
    """
    if not isinstance(nutrition, NutritionData):
        nutrition = NutritionData.model_validate(nutrition)
    if not isinstance(profile, UserProfile):
        profile = UserProfile.model_validate(profile)

    profile_doc = profile.to_document()
    prompt = build_prompt(nutrition, profile, condition, food_name)
    logger.debug("Built prompt (trimmed): %s", prompt[:1000])
    body = build_request_body(
        prompt,
        {"userProfile": profile_doc},
        [{"role": "user", "content": f"USER_PROFILE_JSON: {json.dumps(profile_doc)}"}],
    )

    try:
        response = requests.post(LLM_URL, json=body, timeout=LLM_TIMEOUT)
        if not response.ok:
            logger.error("LLM Error %s: %s", response.status_code, response.text[:500])
            return evaluate_risk(nutrition, condition)
        payload = response.json()
    except requests.exceptions.RequestException as e:
        logger.error("LLM call failed: %s", e)
        return evaluate_risk(nutrition, condition)
    except (ValueError, RecursionError) as e:
        logger.error("Failed to parse JSON from LLM response: %s", e)
        return evaluate_risk(nutrition, condition)

    output = extract_output_text(payload)
    if not output:
        logger.warning("LLM returned no text, using fallback evaluator")
        return evaluate_risk(nutrition, condition)

    logger.debug("LLM output (first non-empty): %s", output[:1500])
    return parse_llm_response(output)


# =====================================================================
# DAILY TIPS
# =====================================================================

def _as_profile(profile):
    if profile is None or isinstance(profile, UserProfile):
        return profile
    try:
        return UserProfile.model_validate(profile)
    except ValidationError as e:
        logger.warning("Ignoring unreadable profile for tips prompt: %s", e)
        return None


def generate_personalized_daily_tips(db, user_id, profile=None, now=None):
    """
    Ask the model for five tips tailored to today's scans and store them.

    Best effort: returns {"tips", "source", "counts"} or None when the
    model request or the store write failed (the failure is logged).
    """
    try:
        todays_scans = get_todays_scans(db, user_id, now=now)
        counts = count_verdicts(todays_scans)
        logger.info("Today scans for %s: total=%s counts=%s", user_id, len(todays_scans), counts)

        prompt = build_tips_prompt(_as_profile(profile), todays_scans, counts)
        body = build_request_body(
            prompt,
            {"userId": user_id, "counts": counts, "todaysScansLength": len(todays_scans)},
        )

        response = requests.post(LLM_URL, json=body, timeout=TIPS_TIMEOUT)
        if not response.ok:
            logger.error("LLM tips request failed: %s %s", response.status_code, response.text[:500])
            return None

        tips = parse_tips_from_llm(response.text)
        source = "llm"
        if not tips or len(tips) != TIP_COUNT:
            logger.warning("LLM did not return %s tips; using default tips", TIP_COUNT)
            tips = as_tip_objects(DEFAULT_PROFILE_TIPS)
            source = "default"

        update_user_health_tips(db, user_id, tips)
        create_health_audit_log(
            db, user_id, "health.tip_generated",
            f"Daily tips generated ({source})",
            details={"source": source, **counts},
        )
        logger.info("Saved personalized tips for user: %s", user_id)
        return {"tips": tips, "source": source, "counts": counts}
    except Exception as e:
        logger.error("Error generating personalized tips: %s", e)
        return None
