from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import List, Optional

from core.diff_utils import generate_diff
from core.pov import resolve_pov_instruction
from core.protect import restore_protected_blocks, strip_protected_blocks
from core.response_parser import parse_response
from core.rules import compile_rules
from domain import ConnectionMode, DiffResult, RefineContext, RefinePreferences, RefineRequest, RefineResult
from errors import GenerationTimeoutError, RefineInProgressError, ValidationError
from language_model import LanguageModel, OpenAIModel, PluginProxyModel
from logger import get_logger, log_event, log_exception, log_json, log_performance
from prompt_schema import DEFAULT_SYSTEM_PROMPT, USER_PROMPT_TEMPLATE
from settings import Settings
from storage import InMemoryMetadataStore, MetadataStore

logger = get_logger(__name__)

CHARACTER_DESCRIPTION_CHARS = 500
PREVIOUS_TAIL_CHARS = 200


@dataclass
class RefineState:
    """Re-entrancy guard owned by the caller; at most one refinement in flight."""
    in_flight: bool = False
    active_message_id: Optional[str] = None

    def try_acquire(self, message_id: str) -> bool:
        if self.in_flight:
            return False
        self.in_flight = True
        self.active_message_id = message_id
        return True

    def release(self) -> None:
        self.in_flight = False
        self.active_message_id = None


def build_context_block(context: Optional[RefineContext], pov_instruction: Optional[str]) -> str:
    parts: List[str] = []
    ctx = context or RefineContext()

    description = (ctx.character_description or "")[:CHARACTER_DESCRIPTION_CHARS]
    if ctx.character_name or description:
        line = f"Character: {ctx.character_name or 'Unknown'}"
        if description:
            line += f" - {description}"
        parts.append(line)
    if ctx.user_name:
        parts.append(f"User character: {ctx.user_name}")
    if pov_instruction:
        parts.append(f"Point of view: {pov_instruction}")
    if ctx.last_user_message:
        parts.append(f"Last user message:\n{ctx.last_user_message}")
    if ctx.previous_response:
        parts.append(f"Previous response ending (last ~{PREVIOUS_TAIL_CHARS} chars):\n"
                     f"{ctx.previous_response[-PREVIOUS_TAIL_CHARS:]}")

    if not parts:
        return ""
    return "Context:\n" + "\n\n".join(parts) + "\n\n"


def create_model(settings: Settings) -> LanguageModel:
    if settings.connection_mode is ConnectionMode.PLUGIN:
        return PluginProxyModel(settings.plugin_url, timeout_s=settings.request_timeout_s)
    return OpenAIModel(
        settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        max_tokens=settings.max_tokens,
        timeout_s=settings.request_timeout_s,
    )


class RedraftPipeline:
    def __init__(self, settings: Settings, model: LanguageModel,
                 store: Optional[MetadataStore] = None, state: Optional[RefineState] = None):
        self.settings = settings
        self.model = model
        self.store = store if store is not None else InMemoryMetadataStore()
        self.state = state if state is not None else RefineState()

    def build_request(self, text: str, preferences: RefinePreferences,
                      context: Optional[RefineContext] = None) -> RefineRequest:
        stripped, blocks = strip_protected_blocks(text)
        rules_text = compile_rules(preferences.builtin_rules, preferences.custom_rules)
        pov_instruction = resolve_pov_instruction(
            preferences.pov, stripped, self.settings.pov_mixed_threshold
        )
        system_prompt = (preferences.system_prompt or "").strip() or DEFAULT_SYSTEM_PROMPT
        user_prompt = USER_PROMPT_TEMPLATE.format(
            context_block=build_context_block(context, pov_instruction),
            rules=rules_text,
            message=stripped,
        )
        logger.debug(f"[prompt] System prompt ({len(system_prompt)} chars), "
                     f"refinement prompt ({len(user_prompt)} chars), {len(blocks)} protected block(s)")
        return RefineRequest(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            stripped_text=stripped,
            blocks=blocks,
            rules_text=rules_text,
            pov_instruction=pov_instruction,
        )

    async def _generate(self, request: RefineRequest) -> str:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.model.generate, request.system_prompt, request.user_prompt),
                timeout=self.settings.request_timeout_s,
            )
        except asyncio.TimeoutError as e:
            # The worker thread is abandoned, not retried
            raise GenerationTimeoutError(
                f"Refinement timed out after {self.settings.request_timeout_s:g}s"
            ) from e

    async def refine_message(self, message_id: str, text: str, preferences: RefinePreferences,
                             context: Optional[RefineContext] = None) -> RefineResult:
        """Refine one message. The caller keeps ``text`` untouched if this raises."""
        message_id = str(message_id)
        if not text or not text.strip():
            raise ValidationError("Message has no text content")
        if not self.state.try_acquire(message_id):
            logger.debug(f"Already refining {self.state.active_message_id}, rejecting {message_id}")
            raise RefineInProgressError("A refinement is already in progress")

        t0 = time.perf_counter()
        log_event("REFINE_START", f"message={message_id} chars={len(text)}")
        try:
            # Stale diff data from an earlier refinement of this message
            self.store.remove_diff(message_id)
            self.store.save_original(message_id, text)

            request = self.build_request(text, preferences, context)
            raw = await self._generate(request)

            parsed = parse_response(raw)
            if parsed.changelog:
                logger.info(f"[changelog] {parsed.changelog}")
            refined = restore_protected_blocks(parsed.refined, request.blocks)

            self.store.save_diff(message_id, text, parsed.changelog)
        except Exception as e:
            self.store.pop_original(message_id)
            log_exception("REFINE_FAILED", e)
            raise
        finally:
            self.state.release()

        duration_ms = (time.perf_counter() - t0) * 1000
        log_performance("REFINE_MESSAGE", duration_ms, message_id=message_id,
                        mode=self.settings.connection_mode.value)
        diff: Optional[DiffResult] = None
        # restore_diff can still rebuild it from the store
        if preferences.show_diff_after_refine:
            diff = generate_diff(text, refined, parsed.changelog)
            log_json("REFINE_DIFF", "Refinement complete", message_id=message_id, changed=diff.changed,
                     words_inserted=diff.words_inserted, words_deleted=diff.words_deleted)
        return RefineResult(
            message_id=message_id,
            original=text,
            refined=refined,
            changelog=parsed.changelog,
            diff=diff,
            duration_ms=duration_ms,
        )

    def undo(self, message_id: str) -> str:
        """Return the stored original for ``message_id`` and forget its refinement."""
        message_id = str(message_id)
        original = self.store.pop_original(message_id)
        if original is None:
            raise ValidationError("No original text to restore")
        self.store.remove_diff(message_id)
        log_event("REFINE_UNDO", f"message={message_id} restored")
        return original

    def restore_diff(self, message_id: str, current_text: str) -> Optional[DiffResult]:
        """Rebuild the review diff, with its stored changelog, for a message refined in an earlier session."""
        entry = self.store.get_diff(str(message_id))
        if not entry:
            return None
        return generate_diff(entry["original"], current_text, entry.get("changelog"))
