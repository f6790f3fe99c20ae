"""Text extractor adapter — normalizes uploaded bytes into clean text.

Dispatch by MIME type:
  text/plain            → strict UTF-8 decode, no external call
  application/pdf       → pypdf (only when ``native_pdf`` is enabled), falling
                          back to the generative service for scanned PDFs
  everything else       → generative-document service (OCR where needed)

Never partially succeeds: returns non-empty stripped text or raises
``ExtractionEmpty`` / ``ExtractionUnavailable``.
"""

from __future__ import annotations

import io
import logging
import re
from typing import Protocol

import pypdf
from pypdf.errors import PdfReadError

from kbcore import llm_client
from kbcore.config import ExtractionCfg
from kbcore.errors import ExtractionEmpty, ExtractionUnavailable

logger = logging.getLogger(__name__)

STANDARD = "standard"
DEEP = "deep"
_MODES = (STANDARD, DEEP)

NO_TEXT_SENTINEL = "NO_TEXT_FOUND"

_COMMON_RULES = """\
- Preserve paragraph breaks.
- Correct common character encoding errors (e.g. replace 'â€™' with an apostrophe).
- Remove control characters and unreadable gibberish.
- Do not add any commentary, preamble, explanation, or summary.
- Do not wrap the output in code blocks or JSON.
- If the document contains no readable text, respond with exactly NO_TEXT_FOUND."""

_STANDARD_PROMPT = f"""\
You are an expert text extraction and cleaning tool. Extract the main body of \
human-readable text from the attached document, performing OCR where needed.
- Ignore page numbers, running headers and footers, and irrelevant metadata \
unless they are part of the main content.
{_COMMON_RULES}
Return only the raw extracted text."""

_DEEP_PROMPT = f"""\
You are an expert text extraction tool. Extract every piece of text from the \
attached document, including text embedded in images, figures, tables, \
captions and scanned pages, performing OCR wherever needed.
{_COMMON_RULES}
Return only the raw extracted text."""

_FENCE_RE = re.compile(r"```[a-zA-Z]*\n?")


class GenerativeExtractionService(Protocol):
    """External generative-document service: ``generate(prompt, fileRef) -> text``.

    Returns None when the response carries no text field.
    """

    def generate(self, prompt: str, data: bytes, mime_type: str) -> str | None: ...


class LiteLLMExtractionService:
    """Generative extraction through ``litellm.completion`` with the file inlined."""

    def __init__(self, config: ExtractionCfg | None = None) -> None:
        self._config = config or ExtractionCfg()

    def generate(self, prompt: str, data: bytes, mime_type: str) -> str | None:
        llm_client.validate_api_key(self._config.model)
        return llm_client.complete(
            model=self._config.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        llm_client.file_part(data, mime_type),
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
            temperature=0.0,
            num_retries=self._config.num_retries,
            timeout=self._config.timeout,
        )


def choose_mode(mime_type: str, level: str | None = None) -> str:
    """Pick an extraction intensity from source-type heuristics.

    Images and archived material get ``deep``; everything else ``standard``.
    """
    if base_mime(mime_type).startswith("image/"):
        return DEEP
    if level and level.strip().lower() == "archive":
        return DEEP
    return STANDARD


def base_mime(mime_type: str) -> str:
    return mime_type.split(";")[0].strip().lower()


class TextExtractor:
    """Turn document bytes into clean text.

    Args:
        service:    Generative-document service for non-plain-text formats.
        native_pdf: Try pypdf first for PDFs before calling *service*.
    """

    def __init__(
        self,
        service: GenerativeExtractionService | None = None,
        native_pdf: bool = False,
    ) -> None:
        self._service = service
        self._native_pdf = native_pdf

    def extract(self, data: bytes, mime_type: str, mode: str = STANDARD) -> str:
        """Return non-empty, stripped text for *data*.

        Raises:
            ExtractionEmpty: The document yielded no readable text.
            ExtractionUnavailable: The external service failed or answered malformed.
        """
        if mode not in _MODES:
            raise ValueError(f"mode must be one of {_MODES}, got {mode!r}")

        mime = base_mime(mime_type)
        if mime == "text/plain":
            text = _decode_utf8(data)
        elif mime == "application/pdf" and self._native_pdf:
            text = self._extract_pdf(data)
            if not text.strip():
                logger.info("pypdf found no text layer; falling back to generative extraction")
                text = self._extract_remote(data, mime, mode)
        else:
            text = self._extract_remote(data, mime, mode)

        text = text.strip()
        if not text:
            raise ExtractionEmpty("no readable text content found in the document")
        return text

    # ------------------------------------------------------------------
    # Native PDF
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        """Extract all page text with pypdf; empty string if unparseable."""
        try:
            reader = pypdf.PdfReader(io.BytesIO(data))
            parts: list[str] = []
            for page in reader.pages:
                stripped = (page.extract_text() or "").strip()
                if stripped:
                    parts.append(stripped)
        except (PdfReadError, ValueError) as exc:
            logger.warning("pypdf could not read document: %s", exc)
            return ""
        return "\n\n".join(parts)

    # ------------------------------------------------------------------
    # Generative service
    # ------------------------------------------------------------------

    def _extract_remote(self, data: bytes, mime: str, mode: str) -> str:
        if self._service is None:
            raise ExtractionUnavailable(f"no extraction service configured for {mime}")
        prompt = _DEEP_PROMPT if mode == DEEP else _STANDARD_PROMPT
        try:
            raw = self._service.generate(prompt, data, mime)
        except Exception as exc:
            logger.warning("Extraction service call failed for %s: %s", mime, exc)
            raise ExtractionUnavailable(str(exc) or type(exc).__name__) from exc

        if not isinstance(raw, str):
            raise ExtractionUnavailable(
                "the extraction service returned a malformed response (no text field)"
            )
        cleaned = clean_model_output(raw)
        if cleaned == NO_TEXT_SENTINEL:
            return ""
        return cleaned


def _decode_utf8(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        logger.warning("Plain-text document is not valid UTF-8: %s", exc)
        raise ExtractionUnavailable(
            f"document is not valid UTF-8 text (byte {exc.start}: {exc.reason})"
        ) from exc


def clean_model_output(text: str) -> str:
    """Strip Markdown code fences and surrounding whitespace from model output."""
    return _FENCE_RE.sub("", text).replace("```", "").strip()
