"""
report.py - Report Parsing Module
Turns the vision model's raw reply into a normalized diagnostic report
"""

import json
import logging
import math
import re

logger = logging.getLogger(__name__)

RESULT_BENIGN = "Nodule Detected - Benign"
RESULT_MALIGNANT = "Nodule Detected - Malignant"
RESULT_NO_NODULE = "No Nodule Detected"
RESULT_INDETERMINATE = "Indeterminate - Further Evaluation Required"

TECHNICAL_FIELDS = ("noduleSize", "location", "shape", "density")

_FENCE_OPEN = re.compile(r"```json\s*", re.IGNORECASE)
_FENCE_ANY = re.compile(r"```\s*")


def default_recommendations() -> list:
    return [
        "Consult with a pulmonologist for proper evaluation",
        "Consider additional imaging if clinically indicated",
        "Regular follow-up as recommended by your physician",
        "Maintain healthy lifestyle and avoid smoking",
    ]


def _text(value, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def _confidence(value, fallback: float = 75.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not number or not math.isfinite(number):
        return fallback
    return round(number, 2)


def extract_fallback(text: str) -> dict:
    """
    Keyword-based report used when the model reply is not valid JSON

    Args:
        text: Raw model reply

    Returns:
        Partial report dictionary in the same shape as the parsed JSON
    """
    lower = text.lower()
    result, risk_level, confidence = RESULT_INDETERMINATE, "moderate", 74

    if "benign" in lower:
        result, risk_level, confidence = RESULT_BENIGN, "low", 78
    elif "malignant" in lower or "cancer" in lower:
        result, risk_level, confidence = RESULT_MALIGNANT, "high", 72
    elif "no nodule" in lower or "normal" in lower:
        result, risk_level, confidence = RESULT_NO_NODULE, "none", 88

    return {
        "result": result,
        "confidence": confidence,
        "riskLevel": risk_level,
        "description": "Analysis completed.",
        "technicalDetails": {field: "N/A" for field in TECHNICAL_FIELDS},
        "recommendations": default_recommendations(),
        "imageQuality": "Fair",
        "findings": text[:500],
    }


def strip_fences(text: str) -> str:
    """Remove markdown code fences around a JSON reply"""
    return _FENCE_ANY.sub("", _FENCE_OPEN.sub("", text)).strip()


def parse_report(text: str) -> dict:
    """
    Parse and normalize the vision model reply

    Missing or malformed fields are replaced with safe defaults so the
    frontend always receives a complete report.

    Args:
        text: Raw model reply, JSON possibly wrapped in markdown fences

    Returns:
        Dictionary with result, confidence, riskLevel, description,
        technicalDetails, recommendations, imageQuality and findings
    """
    try:
        parsed = json.loads(strip_fences(text))
        if not isinstance(parsed, dict):
            raise ValueError("report JSON is not an object")
    except ValueError:
        logger.warning("JSON parse failed, using text-based fallback extractor")
        parsed = extract_fallback(text)

    details = parsed.get("technicalDetails")
    if not isinstance(details, dict):
        details = {}

    recommendations = parsed.get("recommendations")
    if isinstance(recommendations, list):
        recommendations = [str(r).strip() for r in recommendations if str(r).strip()]
    else:
        recommendations = None
    if not recommendations:
        recommendations = default_recommendations()

    return {
        "result": _text(parsed.get("result"), RESULT_INDETERMINATE),
        "confidence": _confidence(parsed.get("confidence")),
        "riskLevel": _text(parsed.get("riskLevel"), "moderate"),
        "description": _text(parsed.get("description"), "Analysis completed. Please consult a medical professional."),
        "technicalDetails": {field: _text(details.get(field), "N/A") for field in TECHNICAL_FIELDS},
        "recommendations": recommendations,
        "imageQuality": _text(parsed.get("imageQuality"), "Fair"),
        "findings": _text(parsed.get("findings"), "Image analyzed by the vision AI model."),
    }
