"""Expert-session transcripts: redact personal data, then index as plain text.

Transcripts have no uploaded object; they become sources with id
``sme-<epoch millis>`` and no download URL.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from kbcore import llm_client
from kbcore.config import ExtractionCfg
from kbcore.errors import ExtractionUnavailable
from kbcore.pipeline.orchestrator import IngestionOrchestrator, IngestResult

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

_REDACTION_PROMPT = f"""\
You are a data privacy expert. Redact all Personally Identifiable Information \
(PII) from the following text. PII includes, but is not limited to:
- Names of people
- Email addresses
- Phone numbers
- Physical addresses
- Social Security Numbers or other government IDs
- Any other data that could uniquely identify an individual.

Replace every piece of PII with the placeholder '{REDACTED}'. Do not alter the \
structure or the non-PII content of the text. Return only the redacted text.

Original text:
"""


class TranscriptIngestor:
    """Redact a transcript through the generative model and hand it to the orchestrator.

    Args:
        orchestrator: Orchestrator that chunks and indexes the redacted text.
        config:       Model settings for the redaction call.
        redact:       Replacement redaction function (text → text), mainly for tests.
    """

    def __init__(
        self,
        orchestrator: IngestionOrchestrator,
        config: ExtractionCfg | None = None,
        redact: Callable[[str], str | None] | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._config = config or ExtractionCfg()
        self._redact = redact or self._redact_with_model

    def ingest(self, transcript: str, source_name: str, level: str, topic: str) -> IngestResult:
        source_id = f"sme-{int(time.time() * 1000)}"
        try:
            redacted = self._redact(transcript)
        except Exception as exc:
            logger.error("Redaction of %s failed: %s", source_name, exc)
            err = ExtractionUnavailable(f"failed to redact transcript: {exc}")
            return IngestResult(
                success=False, source_id=source_id, error=str(err), error_kind=err.kind
            )
        if not redacted or not redacted.strip():
            err = ExtractionUnavailable("failed to redact transcript: redaction returned empty text")
            return IngestResult(
                success=False, source_id=source_id, error=str(err), error_kind=err.kind
            )
        return self._orchestrator.process_text(source_id, source_name, level, topic, redacted)

    def _redact_with_model(self, text: str) -> str | None:
        llm_client.validate_api_key(self._config.model)
        return llm_client.complete(
            model=self._config.model,
            messages=[{"role": "user", "content": _REDACTION_PROMPT + text}],
            temperature=0.0,
            num_retries=self._config.num_retries,
            timeout=self._config.timeout,
        )
