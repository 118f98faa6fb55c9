"""Structured tag extraction for chunks of electrical drawing text.

For every chunk the extractor:

1. Runs the deterministic local extractor (dictionary tokens, identifier
   regex, panel / voltage / arrow patterns).  This never raises.
2. Asks the LLM for the same fields as strict JSON.  Provider errors,
   timeouts, malformed JSON and schema mismatches all count as a failed call.
3. Returns the LLM result merged with the local one (union of components and
   connections), or the local result alone when the LLM call failed.
"""

from __future__ import annotations

import structlog
from pydantic import ValidationError

from metrocircuit.config.domain_knowledge import (
    COMPONENT_TOKEN_RE,
    COMPONENT_TOKENS,
    CONNECTION_RE,
    IDENTIFIER_RE,
    PANEL_RE,
    VOLTAGE_RE,
    normalize_voltage,
)
from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.models.document import Connection, ExtractedTags
from metrocircuit.utils.errors import MetroCircuitError
from metrocircuit.utils.llm_json import parse_json_object

logger = structlog.get_logger(logger_name=__name__)

_SYSTEM_PROMPT = (
    "You extract structured data from electrical distribution drawings and "
    "schedules (single line diagrams, panel schedules, cable schedules). "
    "Return ONLY a JSON object, no prose."
)

_USER_PROMPT_TEMPLATE = """Extract the following fields from the text below.

- "panel": the panel or switchboard name this text belongs to ("" if none)
- "voltage": the main voltage level, e.g. "415V", "11kV", "110V DC" ("" if none)
- "components": equipment mentioned, using these families where they apply:
  {vocabulary}. Include designators such as "ACB Q1" or "TR-2".
- "connections": list of {{"from": ..., "to": ..., "label": ...}} objects for
  every electrical connection stated in the text; "label" holds the cable
  size or feeder name if given.

Respond with exactly this shape:
{{"panel": "", "voltage": "", "components": [], "connections": []}}

TEXT:
{text}"""

# Cap the text sent to the model; the local extractor still sees everything.
_MAX_PROMPT_CHARS = 6000


class TagExtractor:
    """Extracts panel, voltage, components and connections from chunk text.

    Parameters
    ----------
    llm:
        Text-generation provider, or ``None`` to run local extraction only.
    """

    def __init__(self, llm: ILLMProvider | None = None) -> None:
        self._llm = llm

    @property
    def uses_llm(self) -> bool:
        return self._llm is not None

    async def extract(self, chunk_text: str) -> ExtractedTags:
        """Extract tags from *chunk_text*; never raises."""
        local = self.extract_local(chunk_text)
        if self._llm is None or not chunk_text.strip():
            return local

        try:
            response = await self._llm.complete(
                system_prompt=_SYSTEM_PROMPT,
                user_prompt=_USER_PROMPT_TEMPLATE.format(
                    vocabulary=", ".join(COMPONENT_TOKENS),
                    text=chunk_text[:_MAX_PROMPT_CHARS],
                ),
                temperature=0.0,
                max_tokens=800,
            )
            remote = ExtractedTags.model_validate(parse_json_object(response))
        except (MetroCircuitError, ValidationError) as exc:
            logger.warning(
                "tag_extraction_fallback",
                provider=self._llm.get_provider_name(),
                error=str(exc)[:200],
            )
            return local
        except Exception as exc:  # timeouts and transport errors from the SDKs
            logger.warning(
                "tag_extraction_fallback",
                provider=self._llm.get_provider_name(),
                error=f"{type(exc).__name__}: {exc}"[:200],
            )
            return local

        return self._clean(remote).merge(local)

    @staticmethod
    def extract_local(text: str) -> ExtractedTags:
        """Deterministic pattern-based extraction; always returns every field."""
        components: list[str] = []
        seen: set[str] = set()

        def _add(value: str) -> None:
            key = value.upper()
            if key not in seen:
                seen.add(key)
                components.append(value)

        for match in COMPONENT_TOKEN_RE.finditer(text):
            _add(match.group(1).upper())
        for match in IDENTIFIER_RE.finditer(text):
            _add(match.group(0))

        panel = ""
        panel_match = PANEL_RE.search(text)
        if panel_match:
            panel = " ".join((panel_match.group(1) or panel_match.group(2) or "").upper().split())

        voltage = ""
        voltage_match = VOLTAGE_RE.search(text)
        if voltage_match:
            voltage = normalize_voltage(*voltage_match.groups())

        connections: list[Connection] = []
        links: set[tuple[str, str, str]] = set()
        for match in CONNECTION_RE.finditer(text):
            connection = Connection(from_=match.group(1), to=match.group(2))
            if connection.key() not in links:
                links.add(connection.key())
                connections.append(connection)

        return ExtractedTags(
            panel=panel,
            voltage=voltage,
            components=components,
            connections=connections,
        )

    @staticmethod
    def _clean(tags: ExtractedTags) -> ExtractedTags:
        """Drop blank components and connections with a missing endpoint."""
        return ExtractedTags(
            panel=tags.panel.strip(),
            voltage=tags.voltage.strip(),
            components=[c.strip() for c in tags.components if c and c.strip()],
            connections=[c for c in tags.connections if c.from_.strip() and c.to.strip()],
        )
