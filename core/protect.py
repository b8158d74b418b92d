"""
Protect structured regions (code fences, block markup, bracket-tagged blocks)
from the rewriting model by swapping them for indexed placeholders.
"""

import re
from typing import Dict, List, Optional, Sequence, Set, Tuple

from domain import ProtectedBlock
from logger import get_logger

logger = get_logger(__name__)

PLACEHOLDER_TAG = "PROTECTED"
RESERVED_BRACKET_TAGS = frozenset({"CHANGELOG", "REFINED"})
BLOCK_TAGS = ("details", "div", "table", "section", "aside", "article", "nav", "pre", "fieldset", "figure")

_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
_BLOCK_OPEN_RE = re.compile(
    r"<((?:" + "|".join(BLOCK_TAGS) + r")|\w+[-_]\w[\w-]*)(?=[\s/>])([^>]*)>",
    re.IGNORECASE,
)
_BRACKET_BLOCK_RE = re.compile(r"\[([A-Z_]+)\][\s\S]*?\[/\1\]", re.IGNORECASE)
_PLACEHOLDER_RE = re.compile(r"\[" + PLACEHOLDER_TAG + r"_(\d+)\]")


def placeholder(index: int) -> str:
    return f"[{PLACEHOLDER_TAG}_{index}]"


def _find_matching_close(text: str, tag: str, start: int) -> int:
    """Return the end offset of the close tag balancing an open ``tag`` before ``start``, or -1."""
    token_re = re.compile(
        r"<(/?)" + re.escape(tag) + r"(?=[\s/>])[^>]*>",
        re.IGNORECASE,
    )
    depth = 1
    for m in token_re.finditer(text, start):
        if m.group(1):
            depth -= 1
            if depth == 0:
                return m.end()
        elif not m.group(0).endswith("/>"):
            depth += 1
    return -1


def _strip_block_markup(text: str, blocks: List[ProtectedBlock]) -> str:
    out: List[str] = []
    pos = 0
    while True:
        m = _BLOCK_OPEN_RE.search(text, pos)
        if m is None:
            break
        if m.group(0).endswith("/>"):
            out.append(text[pos:m.end()])
            pos = m.end()
            continue
        end = _find_matching_close(text, m.group(1), m.end())
        if end == -1:
            # Unbalanced open tag stays in the text
            out.append(text[pos:m.end()])
            pos = m.end()
            continue
        out.append(text[pos:m.start()])
        out.append(_store(blocks, text[m.start():end]))
        pos = end
    out.append(text[pos:])
    return "".join(out)


def _store(blocks: List[ProtectedBlock], raw: str) -> str:
    block = ProtectedBlock(index=len(blocks), raw=raw)
    blocks.append(block)
    return block.placeholder


def strip_protected_blocks(text: str) -> Tuple[str, List[ProtectedBlock]]:
    """Replace protected regions with ``[PROTECTED_n]`` placeholders.

    Passes run in order over the output of the previous pass:
      1. fenced code blocks
      2. block-level and custom (hyphen/underscore) markup elements
      3. ``[TAG]...[/TAG]`` blocks, except the response protocol tags and placeholders
    """
    blocks: List[ProtectedBlock] = []
    result = text or ""

    result = _CODE_FENCE_RE.sub(lambda m: _store(blocks, m.group(0)), result)

    result = _strip_block_markup(result, blocks)

    def repl_bracket(m):
        tag = m.group(1).upper()
        if tag in RESERVED_BRACKET_TAGS or tag.startswith(PLACEHOLDER_TAG):
            return m.group(0)
        return _store(blocks, m.group(0))

    result = _BRACKET_BLOCK_RE.sub(repl_bracket, result)

    if blocks:
        logger.debug(f"Protected {len(blocks)} block(s) before refinement")
    return result, blocks


def _referenced(raw: str, known: Dict[int, str]) -> Set[int]:
    return {int(i) for i in _PLACEHOLDER_RE.findall(raw)} & set(known)


def _closure(seed: Set[int], raw_by_index: Dict[int, str], roots: Optional[Set[int]] = None) -> Set[int]:
    """Indices reachable through placeholders nested in block bodies.

    Blocks only ever nest lower indices, so one descending sweep is enough.
    With ``roots`` the roots themselves are excluded unless reached.
    """
    reached = set(seed)
    sources = set(seed) | (roots or set())
    for index in sorted(raw_by_index, reverse=True):
        if index in sources or index in reached:
            nested = _referenced(raw_by_index[index], raw_by_index)
            reached |= nested
            sources |= nested
    return reached


def restore_protected_blocks(text: str, blocks: Sequence[ProtectedBlock]) -> str:
    """Put protected regions back; blocks whose placeholder went missing are appended.

    A later pass can capture placeholders of an earlier one (a code fence inside
    a ``<div>``), so each block is expanded against lower-indexed blocks first.
    """
    text = text or ""
    ordered = sorted(blocks, key=lambda b: b.index)
    raw_by_index = {b.index: b.raw for b in ordered}

    expanded: Dict[int, str] = {}
    for block in ordered:
        expanded[block.index] = _PLACEHOLDER_RE.sub(
            lambda m: expanded.get(int(m.group(1)), m.group(0)), block.raw
        )

    def rep(m):
        raw = expanded.get(int(m.group(1)))
        return raw if raw is not None else m.group(0)

    result = _PLACEHOLDER_RE.sub(rep, text)

    present = _closure({b.index for b in ordered if b.placeholder in text}, raw_by_index)
    missing = [b for b in ordered if b.index not in present]
    # Missing blocks nested inside another missing block come back with their parent
    covered = _closure(set(), raw_by_index, roots={b.index for b in missing})
    for block in missing:
        if block.index in covered:
            continue
        logger.warning(f"Placeholder {block.placeholder} dropped by the model; appending block")
        result = result + "\n" + expanded[block.index]
    return result
