"""Canned health tips used when the model gives none or cannot be reached."""

# Seeded onto every new profile and used when daily tip generation fails.
DEFAULT_PROFILE_TIPS = [
    "Choose lower-sodium options when possible.",
    "Prefer whole foods and add vegetables to meals.",
    "Watch portion sizes and consider splitting large portions.",
    "Limit added sugars and sugary drinks.",
    "Balance carbs with protein and fiber to slow absorption.",
]

# Attached to a parsed model verdict that came without tips.
RISKY_RESPONSE_TIPS = [
    "Choose lower-sodium or lower-sugar alternatives.",
    "Avoid processed foods with hidden sodium.",
    "Stay hydrated to help regulate blood pressure.",
    "Pair carbs with protein or fiber to slow absorption.",
    "Monitor portion sizes for better control.",
]

SAFE_RESPONSE_TIPS = [
    "Maintain balanced meals across the day.",
    "Stay consistent with meal timing.",
    "Include vegetables for fiber and nutrients.",
    "Keep salt and sugar within daily limits.",
    "Stay hydrated and active regularly.",
]

# Returned by the threshold evaluator.
SAFE_EVALUATOR_TIPS = [
    "Continue monitoring portion sizes.",
    "Maintain balanced nutrient intake across meals.",
    "Include variety in your diet for complete nutrition.",
    "Stay hydrated throughout the day.",
    "Regular physical activity supports healthy metabolism.",
]


def risky_evaluator_tips(condition):
    """Risky-verdict tips; the second one depends on the condition."""
    return [
        "Choose lower-sodium alternatives when available.",
        "Monitor total carbohydrates carefully." if "diabetes" in condition else "Watch portion sizes.",
        "Consider splitting portions for better nutrient management.",
        "Balance with fiber-rich vegetables when possible.",
        "Track daily totals of key nutrients (sodium, carbs, sugars).",
    ]


def as_tip_objects(contents):
    return [{"content": c} for c in contents]


def default_health_tips(is_risky):
    return as_tip_objects(RISKY_RESPONSE_TIPS if is_risky else SAFE_RESPONSE_TIPS)
