from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class PovClass(Enum):
    FIRST = "first"
    FIRST_AND_SECOND = "firstAndSecond"
    SECOND = "second"
    THIRD = "third"
    UNDETERMINED = "undetermined"


class DiffKind(Enum):
    EQUAL = "equal"
    DELETE = "delete"
    INSERT = "insert"


class ConnectionMode(Enum):
    DIRECT = "direct"   # call the generation service from this process
    PLUGIN = "plugin"   # route through the proxy endpoint


@dataclass(frozen=True)
class RuleDescriptor:
    id: str
    label: str
    prompt: str
    default_enabled: bool = True


@dataclass
class CustomRule:
    text: str
    enabled: bool = True
    label: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {"label": self.label, "text": self.text, "enabled": self.enabled}


@dataclass(frozen=True)
class ProtectedBlock:
    index: int
    raw: str

    @property
    def placeholder(self) -> str:
        return f"[PROTECTED_{self.index}]"


@dataclass
class ParsedResponse:
    refined: str
    changelog: Optional[str] = None


@dataclass
class DiffSegment:
    kind: DiffKind
    text: str


@dataclass
class DiffResult:
    segments: List[DiffSegment]
    changed: bool
    words_inserted: int = 0
    words_deleted: int = 0
    similarity_score: float = 1.0
    changelog: Optional[str] = None


@dataclass
class RefinePreferences:
    """Caller-owned knobs for one refinement.

    - builtin_rules: rule id -> enabled
    - custom_rules: ordered, caller-mutable list
    - pov: auto | detect | 1st | 1.5 | 2nd | 3rd
    - system_prompt: override for the default editor prompt when non-blank
    """
    builtin_rules: Dict[str, bool] = field(default_factory=dict)
    custom_rules: List[CustomRule] = field(default_factory=list)
    pov: str = "auto"
    system_prompt: str = ""
    show_diff_after_refine: bool = True


@dataclass
class RefineContext:
    character_name: Optional[str] = None
    character_description: Optional[str] = None
    user_name: Optional[str] = None
    last_user_message: Optional[str] = None
    previous_response: Optional[str] = None


@dataclass
class RefineRequest:
    system_prompt: str
    user_prompt: str
    stripped_text: str
    blocks: List[ProtectedBlock] = field(default_factory=list)
    rules_text: str = ""
    pov_instruction: Optional[str] = None


@dataclass
class RefineResult:
    message_id: str
    original: str
    refined: str
    changelog: Optional[str] = None
    diff: Optional[DiffResult] = None
    duration_ms: float = 0.0
