"""
Parse a model reply into a change log and the refined text.

Extraction priority:
  1. [REFINED]...[/REFINED] (plus [CHANGELOG]...[/CHANGELOG] if present anywhere)
  2. [CHANGELOG]...[/CHANGELOG], refined text is whatever follows the block
  3. unclosed [CHANGELOG], split at the first blank line
  4. the whole reply
"""

import re
from typing import Optional

from domain import ParsedResponse
from logger import get_logger

logger = get_logger(__name__)

_REFINED_RE = re.compile(r"\[REFINED\]\s*([\s\S]*?)\s*\[/REFINED\]", re.IGNORECASE)
_CHANGELOG_RE = re.compile(r"\[CHANGELOG\]\s*([\s\S]*?)\s*\[/CHANGELOG\]", re.IGNORECASE)
_CHANGELOG_OPEN_RE = re.compile(r"\[CHANGELOG\]\s*([\s\S]*)$", re.IGNORECASE)
_BLANK_LINE_RE = re.compile(r"\n\s*\n")
_TAG_MARKER_RE = re.compile(r"\[/?(?:REFINED|CHANGELOG)\]", re.IGNORECASE)


def parse_response(raw: str) -> ParsedResponse:
    """Never raises; falls back to the trimmed reply when no structure is found."""
    raw = raw or ""
    changelog: Optional[str] = None
    refined: Optional[str] = None
    strategy = "fallback"

    m = _REFINED_RE.search(raw)
    if m:
        refined = m.group(1).strip()
        log_match = _CHANGELOG_RE.search(raw)
        changelog = log_match.group(1).strip() if log_match else None
        strategy = "refined_tag"
    else:
        m = _CHANGELOG_RE.search(raw)
        if m:
            changelog = m.group(1).strip()
            refined = raw[m.end():].strip()
            strategy = "changelog_block"
        else:
            m = _CHANGELOG_OPEN_RE.search(raw)
            if m:
                remainder = m.group(1)
                split = _BLANK_LINE_RE.search(remainder)
                if split:
                    changelog = remainder[:split.start()].strip()
                    refined = remainder[split.start():].strip()
                    strategy = "changelog_unclosed"

    if not refined:
        refined = raw.strip()
        if strategy != "fallback":
            logger.debug(f"Extraction via {strategy} produced empty text; using whole reply")
            strategy = "fallback"

    refined = _TAG_MARKER_RE.sub("", refined).strip()
    if not refined:
        # Reply consisted of tag markers only
        refined = raw.strip()

    logger.debug(f"Parsed reply via {strategy} (changelog={'yes' if changelog else 'no'})")
    return ParsedResponse(refined=refined, changelog=changelog or None)
