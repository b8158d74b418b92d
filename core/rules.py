"""
Rule compilation and custom rule exchange.
"""

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from domain import CustomRule
from errors import ValidationError
from logger import get_logger
from prompt_schema import BUILTIN_RULES, FALLBACK_RULE

logger = get_logger(__name__)

EXPORT_NAME = "ReDraft Custom Rules"
EXPORT_VERSION = 1


def _preview(text: str, limit: int = 80) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def active_rules(builtin_toggles: Mapping[str, bool], custom_rules: Iterable[CustomRule]) -> List[str]:
    """Return the instruction texts that are switched on, built-ins first."""
    rules: List[str] = []

    for descriptor in BUILTIN_RULES:
        if builtin_toggles.get(descriptor.id):
            rules.append(descriptor.prompt)
            logger.debug(f"[rules] Built-in ON: {descriptor.id}")
        else:
            logger.debug(f"[rules] Built-in OFF: {descriptor.id}")

    for i, rule in enumerate(custom_rules):
        text = (rule.text or "").strip()
        if rule.enabled and text:
            rules.append(text)
            logger.debug(f'[rules] Custom #{i} ON: "{_preview(text)}"')
        else:
            logger.debug(f"[rules] Custom #{i} SKIPPED (enabled={rule.enabled}, text={_preview(text, 40)!r})")

    return rules


def compile_rules(builtin_toggles: Mapping[str, bool], custom_rules: Iterable[CustomRule]) -> str:
    """Compile active rules into one numbered instruction block.

    Never empty: with nothing switched on, a single generic instruction is used.
    """
    rules = active_rules(builtin_toggles, custom_rules)
    if not rules:
        rules.append(FALLBACK_RULE)
        logger.debug("[rules] No active rules, using fallback")

    compiled = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, start=1))
    logger.debug(f"[rules] Compiled {len(rules)} rules total")
    return compiled


def export_custom_rules(rules: Sequence[CustomRule], name: str = EXPORT_NAME) -> Dict[str, Any]:
    if not rules:
        raise ValidationError("No custom rules to export")
    return {
        "name": name,
        "version": EXPORT_VERSION,
        "rules": [
            {"label": r.label or "", "text": r.text or "", "enabled": r.enabled is not False}
            for r in rules
        ],
    }


def import_custom_rules(data: Union[str, bytes, Mapping[str, Any]],
                        default_name: Optional[str] = None) -> Tuple[str, List[CustomRule]]:
    """Parse an exported rules document.

    Entries without non-blank text are skipped. Returns ``(name, rules)``.
    """
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError as e:
            raise ValidationError(f"Invalid JSON: {e}") from e

    if not isinstance(data, Mapping):
        raise ValidationError('Invalid file: must contain a non-empty "rules" array')
    raw_rules = data.get("rules")
    if not isinstance(raw_rules, list) or not raw_rules:
        raise ValidationError('Invalid file: must contain a non-empty "rules" array')

    imported: List[CustomRule] = []
    for entry in raw_rules:
        if not isinstance(entry, Mapping):
            continue
        text = entry.get("text")
        if not isinstance(text, str) or not text.strip():
            continue
        imported.append(CustomRule(
            text=text.strip(),
            enabled=entry.get("enabled") is not False,
            label=str(entry.get("label") or ""),
        ))

    if not imported:
        raise ValidationError("No valid rules found in file")

    name = data.get("name") or default_name or EXPORT_NAME
    logger.info(f"Imported {len(imported)} custom rules from {name!r}")
    return str(name), imported


def merge_custom_rules(existing: Sequence[CustomRule], imported: Sequence[CustomRule],
                       replace: bool = False) -> List[CustomRule]:
    if replace or not existing:
        return list(imported)
    return list(existing) + list(imported)
