"""Answer drafting from re-ranked matches in the requested output mode.

=============  ==========================================================
``text``       engineering analysis in prose
``wiring``     terminal / cable level detail as a list
``json``       structured findings object (pretty-printed JSON string)
``schematic``  strict ``{"components", "connections"}`` JSON validated with
               :class:`SchematicAnswer`; when every attempt fails, built
               from the matches' extracted tags instead
=============  ==========================================================

With no matches the drafter answers without calling the LLM.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

import structlog
from pydantic import ValidationError

from metrocircuit.config.domain_knowledge import hierarchy_level
from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.models.document import Connection
from metrocircuit.models.query import OutputMode, QueryIntent, SchematicAnswer, ScoredChunk
from metrocircuit.utils.errors import AllAttemptsFailedError, LLMError, ResponseParseError
from metrocircuit.utils.fallback import Attempt, first_success
from metrocircuit.utils.llm_json import parse_json_object

logger = structlog.get_logger(logger_name=__name__)

NO_MATCHES_ANSWER = (
    "No relevant content was found in the indexed documents for this question. "
    "Try different wording, remove the panel or voltage filters, or check that "
    "the document has finished processing."
)

_SYSTEM_PROMPT = (
    "You are an electrical engineer reviewing metro power-distribution drawings. "
    "Answer strictly from the provided excerpts and cite page numbers like (p. 4). "
    "If the excerpts do not contain the answer, say so."
)

_MODE_INSTRUCTIONS: dict[OutputMode, str] = {
    OutputMode.TEXT: (
        "Write a concise technical analysis answering the question. Mention panel "
        "names, ratings and voltages exactly as written in the excerpts."
    ),
    OutputMode.WIRING: (
        "List the wiring details relevant to the question as bullet points: source, "
        "destination, cable size/type, terminal numbers and protective device ratings. "
        "Write 'not stated' for anything the excerpts do not give."
    ),
    OutputMode.JSON: (
        'Return ONLY a JSON object: {"summary": "...", "findings": [{"item": "...", '
        '"value": "...", "page": 1}], "panels": [], "voltages": []}'
    ),
    OutputMode.SCHEMATIC: (
        'Return ONLY a JSON object: {"components": ["TRANSFORMER TR-1", ...], '
        '"connections": [{"from": "...", "to": "...", "label": "cable or feeder"}]} '
        "describing the equipment and connections relevant to the question, "
        "upstream equipment first."
    ),
}

_INTENT_HINTS: dict[QueryIntent, str] = {
    QueryIntent.DETAIL_LOOKUP: "The user wants a specific value; lead with it.",
    QueryIntent.DIAGRAM_STRUCTURE: "The user wants the arrangement of equipment; describe it top-down.",
    QueryIntent.GENERAL: "",
}


class AnswerDrafter:
    """Drafts answers with a bounded number of LLM attempts.

    Parameters
    ----------
    llm:
        Provider for drafting, or ``None`` to use only the literal fallbacks.
    attempts:
        Number of LLM calls before giving up.
    """

    def __init__(self, llm: ILLMProvider | None, attempts: int = 2) -> None:
        self._llm = llm
        self._attempts = max(1, attempts)

    async def draft(
        self,
        query: str,
        matches: Sequence[ScoredChunk],
        output_mode: OutputMode = OutputMode.TEXT,
        intent: QueryIntent = QueryIntent.GENERAL,
    ) -> str:
        if not matches:
            return NO_MATCHES_ANSWER

        if self._llm is not None:
            user_prompt = self._build_prompt(query, matches, output_mode, intent)
            attempts = [
                Attempt(
                    name=f"draft-{n}",
                    run=lambda: self._draft_once(user_prompt, output_mode),
                )
                for n in range(1, self._attempts + 1)
            ]
            try:
                return (await first_success(attempts, label="answer_draft")).value
            except AllAttemptsFailedError as exc:
                logger.warning("draft_failed", output_mode=output_mode.value, reasons=exc.failures)

        if output_mode is OutputMode.SCHEMATIC:
            schematic = schematic_from_matches(matches)
            if schematic.components:
                return _dump_schematic(schematic)
        return (
            f"An answer could not be generated from the {len(matches)} retrieved excerpts "
            "because the language model did not return a usable response. The most "
            f"relevant excerpt is on page {matches[0].chunk.page_number}."
        )

    async def _draft_once(self, user_prompt: str, output_mode: OutputMode) -> str:
        if self._llm is None:
            raise LLMError("No language model is configured")
        response = await self._llm.complete(
            system_prompt=_SYSTEM_PROMPT,
            user_prompt=user_prompt,
            temperature=0.2,
            max_tokens=2000,
        )
        if not response or not response.strip():
            raise LLMError("Empty draft", provider_name=self._llm.get_provider_name())

        if output_mode is OutputMode.SCHEMATIC:
            try:
                schematic = SchematicAnswer.model_validate(parse_json_object(response))
            except ValidationError as exc:
                raise ResponseParseError(f"Schematic answer has the wrong shape: {exc.error_count()} errors") from exc
            return _dump_schematic(schematic)
        if output_mode is OutputMode.JSON:
            return json.dumps(parse_json_object(response), indent=2, ensure_ascii=False)
        return response.strip()

    @staticmethod
    def _build_prompt(
        query: str,
        matches: Sequence[ScoredChunk],
        output_mode: OutputMode,
        intent: QueryIntent,
    ) -> str:
        blocks: list[str] = []
        for number, match in enumerate(matches, start=1):
            tags = match.chunk.extracted_tags
            header = f"[{number}] page {match.chunk.page_number}"
            if tags.panel:
                header += f", panel {tags.panel}"
            if tags.voltage:
                header += f", {tags.voltage}"
            blocks.append(f"{header}\n{match.chunk.content}")

        parts = [_MODE_INSTRUCTIONS[output_mode]]
        if _INTENT_HINTS[intent]:
            parts.append(_INTENT_HINTS[intent])
        parts.append("EXCERPTS:\n" + "\n\n".join(blocks))
        parts.append(f"QUESTION: {query}")
        return "\n\n".join(parts)


def schematic_from_matches(matches: Sequence[ScoredChunk]) -> SchematicAnswer:
    """Aggregate components and connections from the matches' tags.

    Components are ordered upstream first by electrical hierarchy level, then
    by first appearance.
    """
    seen: dict[str, str] = {}
    connections: list[Connection] = []
    links: set[tuple[str, str, str]] = set()
    for match in matches:
        tags = match.chunk.extracted_tags
        for component in tags.components:
            seen.setdefault(component.upper(), component)
        for connection in tags.connections:
            if connection.key() not in links:
                links.add(connection.key())
                connections.append(connection)
    ordered = sorted(seen.values(), key=hierarchy_level)
    return SchematicAnswer(components=ordered, connections=connections)


def _dump_schematic(schematic: SchematicAnswer) -> str:
    return json.dumps(schematic.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False)
