"""
Point-of-view classification by pronoun frequency.
"""

import re
from typing import Optional

from domain import PovClass
from errors import ValidationError
from logger import get_logger
from prompt_schema import POV_INSTRUCTIONS, POV_LABELS

logger = get_logger(__name__)

DEFAULT_MIXED_THRESHOLD = 0.2
MIN_PRONOUNS = 3

_FIRST_RE = re.compile(r"\b(?:i|me|my|myself|mine)\b", re.IGNORECASE)
_SECOND_RE = re.compile(r"\b(?:you|your|yours|yourself)\b", re.IGNORECASE)
_THIRD_RE = re.compile(r"\b(?:he|she|they|him|her|them|his|hers|their|theirs)\b", re.IGNORECASE)

POV_PREFERENCE_FOR_CLASS = {
    PovClass.FIRST: "1st",
    PovClass.FIRST_AND_SECOND: "1.5",
    PovClass.SECOND: "2nd",
    PovClass.THIRD: "3rd",
}


def detect_pov(text: str, mixed_threshold: float = DEFAULT_MIXED_THRESHOLD) -> PovClass:
    first = len(_FIRST_RE.findall(text or ""))
    second = len(_SECOND_RE.findall(text or ""))
    third = len(_THIRD_RE.findall(text or ""))

    total = first + second + third
    if total < MIN_PRONOUNS:
        return PovClass.UNDETERMINED

    if first > total * mixed_threshold and second > total * mixed_threshold:
        return PovClass.FIRST_AND_SECOND
    if first > second and first > third:
        return PovClass.FIRST
    if second > first and second > third:
        return PovClass.SECOND
    if third > first and third > second:
        return PovClass.THIRD
    return PovClass.UNDETERMINED


def resolve_pov_instruction(preference: str, stripped_text: str,
                            mixed_threshold: float = DEFAULT_MIXED_THRESHOLD) -> Optional[str]:
    """Map a PoV preference (auto, detect, 1st, 1.5, 2nd, 3rd) to a prompt instruction."""
    key = preference or "auto"
    if key not in POV_LABELS:
        raise ValidationError(f"Unknown point of view setting: {preference!r}")

    if key == "detect":
        detected = detect_pov(stripped_text, mixed_threshold)
        if detected is PovClass.UNDETERMINED:
            logger.debug("PoV detection inconclusive; no instruction added")
            return None
        key = POV_PREFERENCE_FOR_CLASS[detected]
        logger.debug(f"Detected PoV: {key}")

    return POV_INSTRUCTIONS.get(key)
