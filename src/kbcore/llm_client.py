"""LiteLLM client wrapper with retry, timeout, and API key validation.

All generative-document and embedding calls route through this module.
LiteLLM's built-in retry is used (``num_retries``, exponential backoff); every
call carries a bounded ``timeout`` so a hung provider surfaces as a normal
stage failure.
"""

from __future__ import annotations

import base64
import os

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "vertex_ai": None,  # Application Default Credentials
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def file_part(data: bytes, mime_type: str) -> dict:
    """Build an OpenAI-style content part carrying *data* inline as base64."""
    encoded = base64.b64encode(data).decode("ascii")
    data_url = f"data:{mime_type};base64,{encoded}"
    if mime_type.startswith("image/"):
        return {"type": "image_url", "image_url": {"url": data_url}}
    return {"type": "file", "file": {"file_data": data_url}}


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int | None = None,
    temperature: float = 0.0,
    num_retries: int = 3,
    timeout: float = 600.0,
) -> str | None:
    """Call litellm.completion() with retry/backoff/timeout.

    Returns the content of the first choice, or None when the response carries
    no choice/message content (callers treat that as a malformed response).
    """
    kwargs: dict = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "num_retries": num_retries,
        "timeout": timeout,
    }
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens
    response = litellm.completion(**kwargs)
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None)


def embed_many(
    model: str,
    texts: list[str],
    num_retries: int = 3,
    timeout: float = 120.0,
) -> list:
    """Call litellm.embedding() for *texts*; returns the raw ``data`` items."""
    response = litellm.embedding(
        model=model,
        input=texts,
        num_retries=num_retries,
        timeout=timeout,
    )
    return list(getattr(response, "data", None) or [])
