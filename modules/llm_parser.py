"""
Pull a Safe/Risky verdict, or a list of tips, out of free-form model text.

Parsing never raises: a verdict that cannot be recovered from JSON is
guessed from keywords, so callers always get a valid HealthPrediction.
"""
import json
import logging
import re

from pydantic import ValidationError

from modules.schemas import HealthPrediction, TIP_COUNT
from modules.tips import default_health_tips

logger = logging.getLogger(__name__)

RISKY_KEYWORDS = re.compile(r"risky|not recommended|avoid|high sodium|high sugar|high carbohydrate")
SMART_QUOTES = re.compile("[\u2018\u2019\u201c\u201d]")
TRAILING_COMMA = re.compile(r",\s*([}\]])")

# Where the useful text may sit in a generation payload, in lookup order.
OUTPUT_PATHS = [
    ("response",),
    ("text",),
    ("output", 0, "content"),
    ("result", "content"),
    ("choices", 0, "message", "content"),
    ("choices", 0, "text"),
]


def _dig(payload, path):
    for key in path:
        if isinstance(key, int):
            if not isinstance(payload, list) or len(payload) <= key:
                return None
        elif not isinstance(payload, dict):
            return None
        payload = payload[key] if isinstance(key, int) else payload.get(key)
    return payload


def output_candidates(payload):
    """Every non-empty text the payload offers, in OUTPUT_PATHS order."""
    found = []
    for path in OUTPUT_PATHS:
        value = _dig(payload, path)
        if isinstance(value, str) and value.strip():
            found.append(value)
    if isinstance(payload, str) and payload.strip():
        found.append(payload)
    return found


def extract_output_text(payload):
    """First non-empty model text in a generation payload, or ''."""
    candidates = output_candidates(payload)
    return candidates[0] if candidates else ""


# =====================================================================
# EXTRACTION STRATEGIES
# =====================================================================

def fenced_block(text):
    """Body of the first ``` fence (optionally tagged json)."""
    match = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL | re.IGNORECASE)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def first_object(text):
    """From the first '{' to the last '}'."""
    match = re.search(r"\{.*\}", text, re.DOTALL)
    return match.group(0) if match else None


def first_array(text):
    """From the first '[' to the last ']'."""
    match = re.search(r"\[.*\]", text, re.DOTALL)
    return match.group(0) if match else None


def balanced_object(text):
    """
    The brace-balanced object that opens at the first '{'.

    Braces inside JSON strings are ignored. If the braces never balance,
    the slice from the first '{' to the last '}' is returned instead.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    end = text.rfind("}")
    return text[start:end + 1] if end > start else None


# Tried in this order; the first candidate that parses and validates wins.
EXTRACTION_STRATEGIES = [
    ("fenced_block", fenced_block),
    ("first_object", first_object),
    ("first_array", first_array),
    ("balanced_object", balanced_object),
]


# =====================================================================
# PARSING & VALIDATION
# =====================================================================

def sanitize_json_text(text):
    """Straighten smart quotes and drop trailing commas."""
    text = SMART_QUOTES.sub('"', text)
    return TRAILING_COMMA.sub(r"\1", text)


def loads_lenient(candidate):
    """json.loads with one sanitised retry. Raises ValueError on anything unreadable."""
    try:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            return json.loads(sanitize_json_text(candidate))
    except RecursionError:
        raise ValueError("JSON nested too deeply") from None


def _normalize_tips(raw):
    if not isinstance(raw, list):
        return []
    tips = []
    for item in raw:
        if isinstance(item, str) and item.strip():
            tips.append({"content": item.strip()})
        elif isinstance(item, dict) and item.get("content"):
            tips.append({"content": str(item["content"])})
    return tips


def coerce_prediction(parsed):
    """Validate parsed model JSON into a HealthPrediction, filling in tips."""
    if isinstance(parsed, list):
        parsed = next((item for item in parsed if isinstance(item, dict) and "prediction" in item), None)
    if not isinstance(parsed, dict):
        raise ValueError("Model JSON does not contain a prediction object")

    label = str(parsed.get("prediction", "")).strip().capitalize()
    defaults = default_health_tips(label == "Risky")
    tips = _normalize_tips(parsed.get("healthTip", parsed.get("health_tip")))
    tips = (tips + defaults)[:TIP_COUNT] if tips else defaults

    return HealthPrediction.model_validate({
        "prediction": label,
        "reasoning": parsed.get("reasoning"),
        "healthTip": tips,
    })


def keyword_fallback(text):
    """Guess the verdict from warning words in the raw text."""
    is_risky = bool(RISKY_KEYWORDS.search(text.lower()))
    return HealthPrediction(
        prediction="Risky" if is_risky else "Safe",
        reasoning=text.strip(),
        health_tip=default_health_tips(is_risky),
    )


def parse_llm_response(text):
    """Best-effort verdict from model output. Never raises."""
    for name, strategy in EXTRACTION_STRATEGIES:
        candidate = strategy(text)
        if candidate is None:
            continue
        try:
            prediction = coerce_prediction(loads_lenient(candidate))
        except (ValueError, ValidationError) as e:
            logger.debug("Strategy %s gave unusable JSON: %s", name, e)
            continue
        logger.info("Parsed model verdict via %s", name)
        return prediction

    logger.warning("Model output parsing failed, using keyword heuristic")
    return keyword_fallback(text)


# =====================================================================
# DAILY TIPS
# =====================================================================

def _tips_from_array(parsed):
    if not isinstance(parsed, list):
        return None
    return _normalize_tips(parsed)[:TIP_COUNT]


def _array_in(text):
    trimmed = text.strip()
    if trimmed.startswith("["):
        try:
            tips = _tips_from_array(json.loads(trimmed))
            if tips is not None:
                return tips
        except json.JSONDecodeError:
            pass
    candidate = first_array(text)
    if candidate:
        try:
            return _tips_from_array(loads_lenient(candidate))
        except json.JSONDecodeError:
            return None
    return None


def parse_tips_from_llm(raw):
    """
    Up to five `{content}` tips from a raw generation body, or None.

    The body is first read as a JSON wrapper whose text fields may hold
    the array; failing that, the first bracketed array in the raw text
    is used.
    """
    try:
        try:
            wrapper = json.loads(raw)
        except json.JSONDecodeError:
            wrapper = None

        if isinstance(wrapper, list):
            return _tips_from_array(wrapper)
        if isinstance(wrapper, dict):
            for text in output_candidates(wrapper):
                tips = _array_in(text)
                if tips:
                    return tips

        match = re.search(r"\[.*?\]", raw, re.DOTALL)
        if match:
            return _tips_from_array(json.loads(match.group(0).replace('\\"', '"')))
        return None
    except (ValueError, RecursionError) as e:
        logger.warning("Failed to parse tips from model output: %s", e)
        return None
