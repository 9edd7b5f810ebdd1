"""Double-check audit pass.

A second, independent model call re-examines the output of a primary
operation and returns a list of corrections, a confidence score and a
summary. The audit is best effort: it is skipped when disabled for the
operation, and any failure (provider, parsing, validation) is logged and
reported as ``failed=True`` with the primary output unchanged. It never
raises into the primary operation.

  verifier = DoubleCheckVerifier(invoker)
  result = await verifier.verify("dispositivo", draft, context=petition_text)
  final_text = result.verified
"""

import json
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from sentencify.llm.parser import parse_ai_response
from sentencify.llm.request_builder import CallOptions, Message, TextBlock
from sentencify.llm.validators import validate_double_check
from sentencify.prompts.double_check import VERIFIED_FIELDS, build_double_check_prompt
from sentencify.schemas.llm_outputs import Correction, DoubleCheckOutput
from sentencify.utils.logging import log, get_logger

MODULE = "llm.double_check"
logger = get_logger()

DOUBLE_CHECK_MAX_TOKENS = 8000
FAILED_SUMMARY = "Erro na verificação"


class DoubleCheckResult(BaseModel):
    """Outcome of one audit pass."""

    verified: Any = None
    corrections: list[Correction] = Field(default_factory=list)
    confidence: Optional[float] = None
    summary: str = ""
    failed: bool = False
    skipped: bool = False


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump_json(by_alias=True, indent=2)
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


class DoubleCheckVerifier:
    """Runs the audit pass through an LLMInvoker."""

    def __init__(self, invoker):
        self.invoker = invoker

    def is_enabled(self, kind: str) -> bool:
        return self.invoker.settings.double_check.applies_to(kind)

    async def verify(
        self,
        kind: str,
        primary_output: Any,
        context: str = "",
        *,
        user_prompt: str = "",
        on_progress: Optional[Callable[[str], None]] = None,
    ) -> DoubleCheckResult:
        """Audit ``primary_output`` of operation ``kind``.

        Args:
            kind: Operation name (topicExtraction, dispositivo, ...).
            primary_output: What the primary call produced (text or JSON data).
            context: Source material the primary call worked from.
            user_prompt: The user's original request (quickPrompt only).
            on_progress: Optional callback receiving short status messages.

        Returns:
            DoubleCheckResult. ``verified`` is the corrected artifact, or
            ``primary_output`` when skipped, failed or uncorrected.
        """
        if not self.is_enabled(kind):
            log.debug(logger, MODULE, "verify_skipped", "Double-check not enabled for operation",
                      kind=kind)
            return DoubleCheckResult(verified=primary_output, skipped=True)

        settings = self.invoker.settings.double_check
        if on_progress is not None:
            on_progress("Verificando resposta...")

        log.info(logger, MODULE, "verify_start", "Running double-check",
                 kind=kind, provider=settings.provider, model=settings.model)
        try:
            prompt = build_double_check_prompt(
                kind, _as_text(primary_output), context, user_prompt=user_prompt,
            )
            raw = await self.invoker.call_ai(
                [Message(role="user", content=[TextBlock(text=prompt)])],
                CallOptions(
                    max_tokens=DOUBLE_CHECK_MAX_TOKENS,
                    provider=settings.provider,
                    model=settings.model,
                ),
            )
        except Exception as e:
            log.error(logger, MODULE, "verify_fallback", "Double-check call failed, keeping original",
                      error=str(e), error_type=type(e).__name__, kind=kind)
            return self._failed(primary_output)

        result = parse_ai_response(raw, DoubleCheckOutput)
        if not result.success:
            log.warning(logger, MODULE, "verify_fallback", "Double-check answer unusable, keeping original",
                        error=result.error, kind=kind)
            return self._failed(primary_output)

        output: DoubleCheckOutput = result.data
        is_valid, semantic_error = validate_double_check(output)
        if not is_valid:
            log.warning(logger, MODULE, "verify_fallback", "Double-check answer failed semantic check",
                        error=semantic_error, kind=kind)
            return self._failed(primary_output)

        verified = output.extra_field(VERIFIED_FIELDS[kind])
        if verified is None:
            verified = primary_output

        if on_progress is not None:
            on_progress(f"Verificação concluída: {len(output.corrections)} correção(ões)")

        log.info(logger, MODULE, "verify_done", "Double-check complete",
                 kind=kind, corrections=len(output.corrections), confidence=output.confidence)
        return DoubleCheckResult(
            verified=verified,
            corrections=output.corrections,
            confidence=output.confidence,
            summary=output.summary,
        )

    @staticmethod
    def _failed(primary_output: Any) -> DoubleCheckResult:
        return DoubleCheckResult(verified=primary_output, failed=True, summary=FAILED_SUMMARY)
