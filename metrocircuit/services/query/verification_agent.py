"""Checklist verification of drafted answers against their source excerpts."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.models.query import OutputMode, ScoredChunk
from metrocircuit.utils.errors import MetroCircuitError, ResponseParseError
from metrocircuit.utils.llm_json import parse_json_object

logger = structlog.get_logger(logger_name=__name__)

_SYSTEM_PROMPT = (
    "You check answers about metro electrical drawings against the excerpts they "
    "were drawn from. Return ONLY a JSON object."
)

_CHECKLIST = """Check the draft answer against the excerpts for omissions:
1. Missing identifiers: panel, feeder, breaker, cable or terminal tags the excerpts give for the question.
2. Missing units or ratings: amperes, kV or V, mm2, kW, breaking capacity.
3. Missing source citations: every fact should name the page it came from.
4. Unresolved contradictions: excerpts that disagree must be pointed out, not silently picked from.

If all checks pass respond {"verdict": "pass", "answer": ""}.
Otherwise respond {"verdict": "corrected", "answer": "<the corrected answer in the same format>"}."""

_PREVIEW_CHARS = 1500


@dataclass(frozen=True)
class VerificationResult:
    answer: str
    verified: bool
    corrected: bool


class VerificationAgent:
    """Runs one verification call; any failure keeps the draft."""

    def __init__(self, llm: ILLMProvider | None) -> None:
        self._llm = llm

    async def verify(
        self,
        query: str,
        draft: str,
        matches: Sequence[ScoredChunk],
        output_mode: OutputMode = OutputMode.TEXT,
    ) -> VerificationResult:
        unchanged = VerificationResult(answer=draft, verified=False, corrected=False)
        if self._llm is None or not matches or output_mode is OutputMode.SCHEMATIC:
            return unchanged

        excerpts = "\n\n".join(
            f"[page {m.chunk.page_number}] {m.chunk.content[:_PREVIEW_CHARS]}" for m in matches
        )
        try:
            response = await self._llm.complete(
                system_prompt=_SYSTEM_PROMPT,
                user_prompt=f"{_CHECKLIST}\n\nQUESTION: {query}\n\nEXCERPTS:\n{excerpts}\n\nDRAFT ANSWER:\n{draft}",
                temperature=0.0,
                max_tokens=2000,
            )
            payload = parse_json_object(response)
            verdict = str(payload.get("verdict", "")).strip().lower()
            raw_answer = payload.get("answer")
            if isinstance(raw_answer, (dict, list)):
                corrected = json.dumps(raw_answer, ensure_ascii=False)
            else:
                corrected = str(raw_answer or "").strip()
            if verdict not in {"pass", "corrected"}:
                raise ResponseParseError(f"Unknown verdict {verdict!r}")
        except MetroCircuitError as exc:
            logger.warning("verification_fallback", error=str(exc)[:200])
            return unchanged
        except Exception as exc:  # transport errors from the SDKs
            logger.warning("verification_fallback", error=f"{type(exc).__name__}: {exc}"[:200])
            return unchanged

        if verdict == "corrected" and corrected and output_mode is OutputMode.JSON:
            try:
                corrected = json.dumps(parse_json_object(corrected), indent=2, ensure_ascii=False)
            except ResponseParseError as exc:
                logger.warning("correction_rejected", output_mode=output_mode.value, error=str(exc)[:200])
                return VerificationResult(answer=draft, verified=True, corrected=False)

        if verdict == "corrected" and corrected and corrected != draft:
            logger.info("answer_corrected", chars=len(corrected))
            return VerificationResult(answer=corrected, verified=True, corrected=True)
        return VerificationResult(answer=draft, verified=True, corrected=False)
