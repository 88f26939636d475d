"""Provider failures and the caller-visible messages derived from them."""

from __future__ import annotations

import json
import re

CONFIGURATION_ERROR_MESSAGE = (
    "Error: API Key is missing or invalid. Please check your configuration."
)

# Substrings that mark an authentication/credential failure.
_CREDENTIAL_MARKERS = ("API_KEY", "API key", "PERMISSION_DENIED", "UNAUTHENTICATED")

_JSON_BODY = re.compile(r"\{.*\}", re.DOTALL)


class ProviderError(Exception):
    """The model provider call failed (transport, auth, quota, ...)."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


def _nested_error_message(message: str) -> str | None:
    """Pull ``error.message`` out of a JSON body embedded in an error string."""
    match = _JSON_BODY.search(message)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except (json.JSONDecodeError, ValueError):
        return None
    if isinstance(parsed, dict) and isinstance(parsed.get("error"), dict):
        inner = parsed["error"].get("message")
        if isinstance(inner, str) and inner:
            return inner
    return None


def describe_provider_error(exc: BaseException, api_key: str | None = None) -> str:
    """Return a sanitized, user-facing description of a provider failure.

    Credential failures never echo the provider's message. The configured API
    key is redacted from anything that is echoed.
    """
    message = str(exc) or "Unknown error occurred"
    if any(marker in message for marker in _CREDENTIAL_MARKERS) or (
        isinstance(exc, ProviderError) and exc.code in (401, 403)
    ):
        return CONFIGURATION_ERROR_MESSAGE

    inner = _nested_error_message(message)
    text = f"Analysis failed: {inner}" if inner else f"Analysis failed: {message}."
    return redact(text, api_key)


def redact(text: str, secret: str | None) -> str:
    """Replace every occurrence of ``secret`` in ``text``."""
    if not secret:
        return text
    return text.replace(secret, "[redacted]")
