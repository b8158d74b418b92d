from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import yaml

from domain import CustomRule, RefinePreferences
from logger import get_logger
from prompt_schema import BUILTIN_RULE_IDS, DEFAULT_BUILTIN_TOGGLES, POV_LABELS

logger = get_logger(__name__)

DEFAULT_PREFERENCES_FILE = "redraft.yaml"


def _candidate_paths(path: str) -> List[str]:
    if os.path.isabs(path):
        return [path]
    root = os.path.dirname(os.path.abspath(__file__))
    return [os.path.abspath(path), os.path.join(root, 'config', path)]


def preferences_from_dict(data: Optional[Dict[str, Any]]) -> RefinePreferences:
    """Build preferences from a decoded mapping; missing toggles take rule defaults."""
    data = data or {}
    toggles = dict(DEFAULT_BUILTIN_TOGGLES)
    for key, value in (data.get("builtin_rules") or {}).items():
        if key in BUILTIN_RULE_IDS:
            toggles[key] = bool(value)
        else:
            logger.warning(f"Ignoring unknown built-in rule {key!r}")

    custom: List[CustomRule] = []
    for entry in data.get("custom_rules") or []:
        if isinstance(entry, str):
            custom.append(CustomRule(text=entry))
        elif isinstance(entry, dict) and isinstance(entry.get("text"), str):
            custom.append(CustomRule(
                text=entry["text"],
                enabled=entry.get("enabled") is not False,
                label=str(entry.get("label") or ""),
            ))

    pov = str(data.get("pov") or "auto")
    if pov not in POV_LABELS:
        logger.warning(f"Unknown pov {pov!r}; using auto")
        pov = "auto"

    return RefinePreferences(
        builtin_rules=toggles,
        custom_rules=custom,
        pov=pov,
        system_prompt=str(data.get("system_prompt") or ""),
        show_diff_after_refine=bool(data.get("show_diff_after_refine", True)),
    )


def load_preferences(path: Optional[str] = None) -> RefinePreferences:
    """Load refinement preferences from YAML.

    Search order:
      1) Given absolute path (as-is)
      2) Relative path from current working directory
      3) Relative path from the repository config/ directory

    The default file is optional; an explicitly named file must exist.
    """
    explicit = path is not None
    candidates = _candidate_paths(path or DEFAULT_PREFERENCES_FILE)

    for p in candidates:
        if os.path.exists(p):
            with open(p, 'r', encoding='utf-8') as f:
                return preferences_from_dict(yaml.safe_load(f))

    if explicit:
        raise FileNotFoundError(f"Preferences YAML not found. Tried: {candidates}")
    return preferences_from_dict(None)
