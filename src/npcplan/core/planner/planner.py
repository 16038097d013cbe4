"""
NPC planner: prompt-in, validated-decision-out.

Flow for one call:
1. Normalize the request and render prompts (prompt_builder)
2. Compile the decision grammar for the engine (grammar_builder); a grammar
   the engine rejects degrades to prompt-only formatting
3. Generate through the runtime, stopping once one JSON object is complete
4. Trim, extract, parse and repair the completion (extraction, validation)
5. Return the decision with the full trace
"""

import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from npcplan.core import config
from npcplan.core.debug_logger import DebugLogger
from npcplan.core.llm.errors import GrammarCompileError
from npcplan.core.llm.llm_config import SamplingConfig, planner_sampling
from npcplan.core.llm.runtime import ModelRuntime
from npcplan.core.planner.extraction import (
    json_object_complete,
    trim_completion,
    try_extract_first_json_object,
)
from npcplan.core.planner.grammar_builder import build_grammar
from npcplan.core.planner.profiles import DEFAULT_PROFILE, PlannerProfile
from npcplan.core.planner.prompt_builder import build_prompts
from npcplan.core.planner.types import DecisionRequest, DecisionSchema, DecisionTrace
from npcplan.core.planner.validation import resolve_decision

logger = logging.getLogger(__name__)


@dataclass
class PlannerSampling:
    """Everything the runtime needs for one planner generation.

    Attributes:
        config: Sampling settings
        grammar: Engine-compiled grammar, or None for prompt-only formatting
        stop_predicate: Early-stop check on the accumulated text
    """
    config: SamplingConfig
    grammar: Any = None
    stop_predicate: Optional[Callable[[str], bool]] = None


class NpcPlanner:
    """Decides an NPC's next grid target with a local model.

    Attributes:
        profile: Rule text, schema and sampling defaults
        sampling: Sampling settings for every call
        trim_to_first_json: Clean the completion and keep only its first JSON
            object; also stops generation as soon as that object is complete
        trace_logger: Optional DebugLogger receiving prompts and decisions
    """

    def __init__(
        self,
        profile: PlannerProfile = DEFAULT_PROFILE,
        sampling: Optional[SamplingConfig] = None,
        trim_to_first_json: bool = config.PLANNER_TRIM_TO_FIRST_JSON,
        trace_logger: Optional[DebugLogger] = None,
    ):
        self.profile = profile
        self.sampling = sampling or planner_sampling().with_overrides(
            temperature=profile.temperature,
            max_tokens=profile.max_tokens,
        )
        self.trim_to_first_json = trim_to_first_json
        self.trace_logger = trace_logger

    @property
    def schema(self) -> DecisionSchema:
        return self.profile.decision_schema

    def build_prompts(self, request: DecisionRequest) -> Tuple[DecisionRequest, str, str]:
        return build_prompts(request, self.profile)

    async def build_sampling(self, request: DecisionRequest, runtime: ModelRuntime) -> PlannerSampling:
        """Compile the grammar for ``request`` and pick the stop predicate."""
        grammar = None
        if self.profile.use_grammar:
            try:
                grammar = await runtime.compile_grammar(build_grammar(request, self.schema))
            except GrammarCompileError as e:
                logger.warning(
                    "Decision grammar could not be compiled (%s); "
                    "continuing with prompt-only formatting and output scanning.",
                    e,
                )
        stop = json_object_complete if self.trim_to_first_json else None
        return PlannerSampling(config=self.sampling, grammar=grammar, stop_predicate=stop)

    def build_decision_trace(
        self,
        request: DecisionRequest,
        system_prompt: str,
        user_prompt: str,
        completion: str,
    ) -> DecisionTrace:
        """Resolve a raw completion into a decision trace. Never raises."""
        raw = completion or ""
        if self.trim_to_first_json:
            cleaned = trim_completion(raw)
            found, json_text = try_extract_first_json_object(cleaned)
            trimmed = json_text if found else cleaned
        else:
            cleaned = trimmed = raw.strip()

        decision, rejection = resolve_decision(
            cleaned, request, self.schema, extract=self.trim_to_first_json
        )
        if self.trace_logger:
            self.trace_logger.log_completion(raw)

        fallback_reason = None
        if rejection is not None:
            fallback_reason = str(rejection)
            logger.warning(
                "NPC planner output rejected (%s); holding position. Raw completion: %r",
                fallback_reason,
                raw,
            )
            if self.trace_logger:
                self.trace_logger.log_fallback(fallback_reason, raw)

        if self.trace_logger:
            self.trace_logger.log_decision(request.behavior.value, decision.to_dict())

        return DecisionTrace(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            completion=trimmed,
            decision=decision,
            fallback_reason=fallback_reason,
        )

    async def plan(self, runtime: ModelRuntime, request: DecisionRequest) -> DecisionTrace:
        """One-shot decision; the runtime's active chat session is untouched."""
        normalized, system_prompt, user_prompt = self.build_prompts(request)
        if self.trace_logger:
            self.trace_logger.log_prompt(system_prompt, user_prompt)

        sampling = await self.build_sampling(normalized, runtime)
        completion = await runtime.complete_once(
            system_prompt,
            user_prompt,
            sampling.config,
            grammar=sampling.grammar,
            stop_predicate=sampling.stop_predicate,
        )
        return self.build_decision_trace(normalized, system_prompt, user_prompt, completion)

    async def plan_in_active_session(
        self, runtime: ModelRuntime, request: DecisionRequest, reset: bool = True
    ) -> DecisionTrace:
        """Decide through the active chat session instead of one-shot.

        With ``reset`` the session is cleared and seeded with the planner
        system prompt first; otherwise the request is appended to the
        existing conversation. The exchange stays in the session history.
        """
        normalized, system_prompt, user_prompt = self.build_prompts(request)
        if self.trace_logger:
            self.trace_logger.log_prompt(system_prompt, user_prompt)

        sampling = await self.build_sampling(normalized, runtime)
        if reset:
            await runtime.clear_active_history(system_prompt)

        completion = ""
        async with aclosing(runtime.stream_chat(user_prompt, sampling.config, sampling.grammar)) as stream:
            async for token in stream:
                completion += token
                if sampling.stop_predicate is not None and sampling.stop_predicate(completion):
                    break
        return self.build_decision_trace(normalized, system_prompt, user_prompt, completion)
