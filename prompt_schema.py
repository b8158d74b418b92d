# prompt_schema.py

from domain import RuleDescriptor

# Declaration order is the compile order.
BUILTIN_RULES = (
    RuleDescriptor(
        id="grammar",
        label="Fix grammar & spelling",
        prompt=(
            "Fix grammatical errors, spelling mistakes, and awkward phrasing. Do not alter intentional "
            "dialect, slang, verbal tics, or character-specific speech patterns; only correct genuine "
            "errors. Preserve intentional sentence fragments used for rhythm or voice."
        ),
    ),
    RuleDescriptor(
        id="echo",
        label="Remove echo & restatement",
        prompt=(
            'Using the "Last user message" from context above, scan for sentences where the character '
            "restates, paraphrases, or references the user's previous message instead of advancing the scene.\n\n"
            "BANNED patterns (if the sentence matches, cut and replace with forward motion):\n"
            '1. Character speaks ABOUT what user said/did (any tense): "You\'re asking me to..." / "You said..." / "You want me to..."\n'
            '2. "That/this" referring to user\'s input: "That\'s not what you..." / "This is about..."\n'
            '3. Reframing: "Not [user\'s word], [character\'s word]." / "In other words..."\n'
            '4. Processing narration: "Your words [verb]..." (hung, landed, settled) / Character processing what '
            "user said / Italicized replays of user's dialogue as character thought.\n\n"
            "Check the WHOLE response, not just the opening. Replace cut content with character action: what they "
            'do next, not what they think about what was said. One-word acknowledgment permitted ("Yeah." / nod), '
            "then forward."
        ),
    ),
    RuleDescriptor(
        id="repetition",
        label="Reduce repetition",
        prompt=(
            'Using the "Previous response ending" from context above, scan for repetitive elements within this '
            "response AND compared to the previous response:\n"
            "1. Repeated physical actions: Same gesture appearing twice+ (crossing arms, sighing, looking away). "
            "Replace the second instance with a different physical expression.\n"
            "2. Repeated sentence structures: Same openings, same punctuation patterns, same metaphor family used twice+.\n"
            "3. Repeated emotional beats: Character hitting the same note twice without progression. If angry twice, "
            "the second should be a different texture.\n\n"
            "Do NOT remove intentional repetition for rhetorical effect (anaphora, callbacks, echoed dialogue). "
            "Only flag mechanical/unconscious repetition."
        ),
    ),
    RuleDescriptor(
        id="voice",
        label="Maintain character voice",
        prompt=(
            'Using the "Character" context provided above, verify each character\'s dialogue is distinct and consistent:\n'
            "1. Speech patterns: If a character uses contractions, slang, verbal tics, or specific vocabulary, "
            "preserve them. Do not polish rough speech into grammatically correct prose.\n"
            "2. Voice flattening: If multiple characters speak, their dialogue should sound different. Flag if all "
            "characters use the same register or vocabulary level.\n"
            "3. Register consistency: A casual character shouldn't suddenly become eloquent mid-scene (unless that "
            "shift IS the point).\n\n"
            "Do not homogenize dialogue. A character's voice is more important than technically \"correct\" writing."
        ),
    ),
    RuleDescriptor(
        id="prose",
        label="Clean up prose",
        prompt=(
            "Scan for common AI prose weaknesses. Per issue found, make the minimum surgical fix:\n"
            '1. Somatic cliches: "breath hitched/caught," "heart skipped/clenched," "stomach dropped/tightened," '
            '"shiver down spine." Replace with plain statement or specific physical detail.\n'
            '2. Purple prose: "Velvety voice," "liquid tone," "fluid grace," "pregnant pause," cosmic melodrama. '
            "Replace with concrete, grounded language.\n"
            '3. Filter words: "She noticed," "he felt," "she realized." Cut the filter and go direct.\n'
            '4. Telling over showing: "She felt sad" / "He was angry." Replace with embodied reactions ONLY if the '
            "telling is genuinely weaker.\n\n"
            "Do NOT over-edit. If prose is functional and voice-consistent, leave it alone. This rule targets clear "
            "weaknesses, not style preferences."
        ),
    ),
    RuleDescriptor(
        id="formatting",
        label="Fix formatting",
        prompt=(
            "Ensure consistent formatting within the response's existing convention:\n"
            "1. Fix orphaned formatting marks (unclosed asterisks, mismatched quotes, broken tags)\n"
            "2. Fix inconsistent style (mixing *asterisks* and _underscores_ for the same purpose)\n"
            "3. Ensure dialogue punctuation is consistent with the established convention\n\n"
            "Do not change the author's chosen formatting convention; only correct errors within it."
        ),
    ),
    RuleDescriptor(
        id="ending",
        label="Fix crafted endings",
        default_enabled=False,
        prompt=(
            'Check if the response ends with a "dismount": a crafted landing designed to feel like an ending '
            "rather than a mid-scene pause.\n\n"
            "DISMOUNT patterns to fix:\n"
            '1. Dialogue payload followed by physical stillness: "Her thumb rested on his pulse." (body part + '
            "state verb + location as final beat).\n"
            '2. Fragment clusters placed after dialogue for weight: "One beat." / "Counting." / "Still."\n'
            "3. Summary narration re-describing the emotional state of the scene.\n"
            "4. Poetic/philosophical final line: theatrical closing statements.\n"
            "5. Double dismount: two landing constructions stacked.\n\n"
            "FIX: Find the last line of dialogue or action with unresolved consequences. Cut everything after it. "
            "If the response has no dialogue (pure narration/action), find the last action with unresolved "
            "consequences and cut any stillness or summary after it. The response should end mid-scene.\n\n"
            "EXCEPTION: If the scene is genuinely concluding (location change, time skip, departure), one clean "
            "landing beat is permitted."
        ),
    ),
    RuleDescriptor(
        id="lore",
        label="Maintain lore consistency",
        default_enabled=False,
        prompt=(
            'Using the "Character" context provided above, flag only glaring contradictions with established '
            "character/world information. Examples: wrong eye color, wrong relationship status, referencing events "
            "that didn't happen, contradicting established abilities.\n\n"
            'Do not invent new lore. When uncertain, preserve the original phrasing rather than "correcting" it. '
            "Minor ambiguities are not errors."
        ),
    ),
)

BUILTIN_RULE_IDS = tuple(rule.id for rule in BUILTIN_RULES)

DEFAULT_BUILTIN_TOGGLES = {rule.id: rule.default_enabled for rule in BUILTIN_RULES}

FALLBACK_RULE = "Improve the overall quality of the message"

POV_LABELS = {
    "auto": "Auto (no instruction)",
    "detect": "Detect from message",
    "1st": "1st person (I/me)",
    "1.5": "1.5th person (I + you)",
    "2nd": "2nd person (you)",
    "3rd": "3rd person (he/she/they)",
}

POV_INSTRUCTIONS = {
    "1st": (
        "The message is written in first person (I/me/my). Maintain this perspective exactly; "
        "do not shift to second or third person."
    ),
    "1.5": (
        "The message uses 1.5th-person PoV: first person (I/me/my) for the AI character's perspective, "
        "and second person (you/your) when referring to the player's character. Maintain this hybrid "
        "perspective exactly."
    ),
    "2nd": (
        "The message is written in second person (you/your). Maintain this perspective exactly; "
        "do not shift to first or third person."
    ),
    "3rd": (
        "The message is written in third person (he/she/they + character names). Maintain this "
        "perspective exactly; do not shift to first or second person."
    ),
}

DEFAULT_SYSTEM_PROMPT = """You are a roleplay prose editor. You refine AI-generated roleplay messages by applying specific rules while preserving the author's creative intent.

Core principles:
- Preserve the original meaning, narrative direction, and emotional tone
- Preserve the original paragraph structure and sequence of events; do not reorder content, merge paragraphs, or restructure the narrative flow
- Edits are surgical: change the minimum necessary to satisfy the active rules. Fix the violating sentence, not the paragraph around it
- Keep approximately the same length unless a rule specifically calls for cuts
- Do not add new story elements, actions, or dialogue not present in the original
- Do not censor, sanitize, or tone down content; the original's maturity level is intentional
- Maintain existing formatting conventions (e.g. *asterisks for actions*, "quotes for dialogue")
- Treat each character as a distinct voice; do not flatten dialogue into a single register
- When rules conflict, character voice and narrative intent take priority over technical polish

Output format (MANDATORY, always follow this structure):
1. First, output a changelog inside [CHANGELOG]...[/CHANGELOG] tags listing each change you made and which rule motivated it. One line per change. If a rule required no changes, omit it.
2. Then output the full refined message inside [REFINED]...[/REFINED] tags with no other commentary.

Example:
[CHANGELOG]
- Grammar: Fixed "their" -> "they're" in paragraph 2
- Repetition: Replaced 3rd use of "softly" with "gently"
[/CHANGELOG]
[REFINED]
(refined message here)
[/REFINED]

Do NOT output any analysis, reasoning, or commentary outside the tags. Only output the two tagged blocks.

You will be given the original message, a set of refinement rules to apply, and optionally context about the characters and recent conversation. Apply the rules faithfully."""

USER_PROMPT_TEMPLATE = """{context_block}Apply the following refinement rules to the message below. Any [PROTECTED_N] placeholders are protected regions; output them exactly as-is.

Remember: output [CHANGELOG]...[/CHANGELOG] first, then the refined message inside [REFINED]...[/REFINED]. No other text outside these tags.

Rules:
{rules}

Original message:
{message}"""
