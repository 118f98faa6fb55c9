"""Intent routing and search-term expansion for incoming questions.

The router asks the LLM for ``{"intent", "keywords"}``.  Any failure yields
the ``general`` intent with no keywords.  Independently of the LLM, fixed
domain keywords are injected for detail-lookup and diagram-structure
questions; the requested output mode implies an intent too (``wiring`` is a
detail lookup, ``schematic`` a diagram-structure question), so injection
still happens when the router call fails.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.models.query import OutputMode, QueryIntent, RouterDecision
from metrocircuit.utils.errors import MetroCircuitError
from metrocircuit.utils.llm_json import parse_json_object

logger = structlog.get_logger(logger_name=__name__)

_SYSTEM_PROMPT = (
    "You route questions about metro electrical drawings (single line diagrams, "
    "panel schedules, cable schedules). Return ONLY a JSON object."
)

_USER_PROMPT_TEMPLATE = """Classify the question and suggest extra search keywords.

Intents:
- "detail_lookup": asks for a specific value (cable size, rating, terminal, setting)
- "diagram_structure": asks how equipment is arranged or connected
- "general": anything else

Respond with exactly: {{"intent": "general", "keywords": ["..."]}}
Give at most 8 short keywords that would appear in the drawings.

QUESTION:
{query}"""

_MODE_INTENTS: dict[OutputMode, QueryIntent] = {
    OutputMode.WIRING: QueryIntent.DETAIL_LOOKUP,
    OutputMode.SCHEMATIC: QueryIntent.DIAGRAM_STRUCTURE,
}

_MAX_KEYWORDS = 8


class RouterAgent:
    """Classifies a question and expands its search terms.

    Parameters
    ----------
    llm:
        Provider for the routing call, or ``None`` to always use the fallback.
    router_config:
        The ``router`` section of the YAML config holding the injected
        keyword lists.
    """

    def __init__(self, llm: ILLMProvider | None, router_config: Mapping[str, Any] | None = None) -> None:
        self._llm = llm
        section = router_config or {}
        self._injected: dict[QueryIntent, list[str]] = {
            QueryIntent.DETAIL_LOOKUP: list(section.get("detail_lookup_keywords", [])),
            QueryIntent.DIAGRAM_STRUCTURE: list(section.get("diagram_structure_keywords", [])),
        }

    async def route(self, query: str, output_mode: OutputMode = OutputMode.TEXT) -> RouterDecision:
        decision = await self._classify(query)
        intents = [decision.intent]
        mode_intent = _MODE_INTENTS.get(output_mode)
        if mode_intent is not None and mode_intent not in intents:
            intents.append(mode_intent)

        keywords = list(decision.expanded_keywords)
        for intent in intents:
            keywords.extend(self._injected.get(intent, []))
        decision = decision.model_copy(update={"expanded_keywords": _dedupe(keywords)})

        logger.info(
            "query_routed",
            intent=decision.intent.value,
            keywords=len(decision.expanded_keywords),
            fallback=decision.used_fallback,
        )
        return decision

    async def _classify(self, query: str) -> RouterDecision:
        if self._llm is None:
            return RouterDecision(used_fallback=True)
        try:
            response = await self._llm.complete(
                system_prompt=_SYSTEM_PROMPT,
                user_prompt=_USER_PROMPT_TEMPLATE.format(query=query),
                temperature=0.0,
                max_tokens=200,
            )
            payload = parse_json_object(response)
            intent = QueryIntent(_normalize_intent(payload.get("intent", "general")))
            raw_keywords = payload.get("keywords") or []
            if not isinstance(raw_keywords, list):
                raise ValueError("keywords is not a list")
        except (MetroCircuitError, ValueError) as exc:
            logger.warning("router_fallback", error=str(exc)[:200])
            return RouterDecision(used_fallback=True)
        except Exception as exc:  # transport errors from the SDKs
            logger.warning("router_fallback", error=f"{type(exc).__name__}: {exc}"[:200])
            return RouterDecision(used_fallback=True)

        keywords = [str(k).strip() for k in raw_keywords if str(k).strip()][:_MAX_KEYWORDS]
        return RouterDecision(intent=intent, expanded_keywords=keywords)


def _dedupe(words: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for word in words:
        key = word.lower()
        if key not in seen:
            seen.add(key)
            result.append(word)
    return result


def _normalize_intent(value: object) -> str:
    """``Detail-Lookup`` and ``detail lookup`` both map to ``detail_lookup``."""
    return "_".join(str(value).strip().lower().replace("-", " ").split())
