"""Translation client adapters.

The pipeline depends on one capability only: turn a flattened batch of
delimiter-prefixed segments into the same batch in another language. Clients
are constructed explicitly and handed to the pipeline; nothing here keeps a
shared connection at module level.
"""

from __future__ import annotations

import json
import re
import sys
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from openai import AzureOpenAI, OpenAI

from .errors import TranslationCallFailed, TranslationProviderConfigurationError

PASSTHROUGH_PATTERN = re.compile(r"^[\s\d.,:;/\\\-–—+()%#]*\d[\s\d.,:;/\\\-–—+()%#]*$")


def is_passthrough(text: str) -> bool:
    """Digits, dates and separators are never sent for translation."""

    return bool(PASSTHROUGH_PATTERN.match(text))


class TranslationClient(ABC):
    """Abstract adapter for translation services."""

    name = "abstract"

    @abstractmethod
    def translate(
        self,
        batch_text: str,
        source_language: Optional[str],
        target_language: str,
    ) -> str:
        """Translate a flattened batch, keeping every delimiter in place."""


class EchoTranslationClient(TranslationClient):
    """A client that returns the original text (useful for testing)."""

    name = "echo"

    def translate(
        self,
        batch_text: str,
        source_language: Optional[str],
        target_language: str,
    ) -> str:
        return batch_text


class CallableTranslationClient(TranslationClient):
    """Adapts a plain ``fn(text, source, target) -> text`` function.

    Any error raised by the function surfaces as :class:`TranslationCallFailed`
    so only the chunk being translated is affected.
    """

    name = "callable"

    def __init__(self, fn: Callable[[str, Optional[str], str], str]) -> None:
        self._fn = fn

    def translate(
        self,
        batch_text: str,
        source_language: Optional[str],
        target_language: str,
    ) -> str:
        try:
            return self._fn(batch_text, source_language, target_language)
        except (TranslationCallFailed, TimeoutError):
            raise
        except Exception as exc:
            raise TranslationCallFailed(f"Translation function failed: {exc}") from exc


class OpenAITranslationClient(TranslationClient):
    """Client that asks an OpenAI chat model to translate a batch."""

    name = "openai"
    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        client: Any,
        *,
        model: Optional[str] = None,
        debug: bool = False,
    ) -> None:
        self._client = client
        self.model = model or self.DEFAULT_MODEL
        self.debug = debug

    def _system_prompt(self, delimiter_hint: str) -> str:
        return (
            "You are a professional translator. Translate the user's text into the "
            "requested language and return only the translation. "
            f"The text is a sequence of segments, each introduced by the character "
            f"'{delimiter_hint}'. Keep every '{delimiter_hint}' exactly where it is, "
            "never add, drop, merge or reorder segments, and keep leading and trailing "
            "spaces of each segment. Preserve numbers, dates, placeholders and markup. "
            "Do not add commentary or wrap the answer in code fences."
        )

    def translate(
        self,
        batch_text: str,
        source_language: Optional[str],
        target_language: str,
    ) -> str:
        if not batch_text:
            return batch_text

        delimiter_hint = batch_text[0]
        source = source_language or "the detected source language"
        messages = [
            {"role": "system", "content": self._system_prompt(delimiter_hint)},
            {
                "role": "user",
                "content": (
                    f"Source language: {source}\n"
                    f"Target language: {target_language}\n\n{batch_text}"
                ),
            },
        ]
        self._log_debug("provider.request.messages", messages)

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                temperature=0,
                messages=messages,
            )
        except Exception as exc:  # pragma: no cover - network call
            raise TranslationCallFailed(
                f"Translation service temporarily unavailable: {exc}"
            ) from exc

        content = self._extract_content(response)
        self._log_debug("provider.response.content", content)
        return self._strip_code_fence(content)

    def _extract_content(self, response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            content = getattr(message, "content", None) if message is not None else None
            if content:
                return str(content)
        raise TranslationCallFailed("Translation service response empty or unrecognised.")

    def _strip_code_fence(self, text: str) -> str:
        """Remove leading/trailing markdown code fences if present."""

        stripped = text.strip("\n")
        if not stripped.startswith("```"):
            return stripped

        first_newline = stripped.find("\n")
        if first_newline == -1:
            return stripped
        body = stripped[first_newline + 1 :]
        closing_index = body.rfind("```")
        if closing_index != -1:
            body = body[:closing_index]
        return body.strip("\n")

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not self.debug:
            return
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload, ensure_ascii=False, indent=2)
        else:
            message = str(payload)
        print(f"[docbridge][provider-debug] {label}:\n{message}", file=sys.stderr)


def build_client(
    settings: Any,
    *,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    debug: Optional[bool] = None,
) -> TranslationClient:
    """Construct the client selected by configuration.

    ``settings`` is a validated configuration model (see
    :mod:`docbridge.configuration`); only attribute access is used. Keyword
    arguments override the configured values.
    """

    provider = (provider or getattr(settings, "LLM_PROVIDER", None) or "openai").strip().lower()
    provider = provider.replace("-", "_")
    if debug is None:
        debug = bool(getattr(settings, "DOCBRIDGE_PROVIDER_DEBUG", False))
    model = model or getattr(settings, "DOCBRIDGE_MODEL", None)

    if provider in {"echo", "noop", "mock"}:
        return EchoTranslationClient()

    if provider == "openai":
        api_key = getattr(settings, "OPENAI_API_KEY", None)
        if not api_key:
            raise TranslationProviderConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        return OpenAITranslationClient(OpenAI(api_key=api_key), model=model, debug=debug)

    if provider == "azure_openai":
        values = {
            "AZURE_OPENAI_API_KEY": getattr(settings, "AZURE_OPENAI_API_KEY", None),
            "AZURE_OPENAI_ENDPOINT": getattr(settings, "AZURE_OPENAI_ENDPOINT", None),
            "AZURE_OPENAI_API_VERSION": getattr(settings, "AZURE_OPENAI_API_VERSION", None),
            "AZURE_OPENAI_DEPLOYMENT_NAME": getattr(
                settings, "AZURE_OPENAI_DEPLOYMENT_NAME", None
            ),
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise TranslationProviderConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )
        client = AzureOpenAI(
            api_key=values["AZURE_OPENAI_API_KEY"],
            api_version=values["AZURE_OPENAI_API_VERSION"],
            azure_endpoint=values["AZURE_OPENAI_ENDPOINT"],
        )
        return OpenAITranslationClient(
            client,
            model=model or values["AZURE_OPENAI_DEPLOYMENT_NAME"],
            debug=debug,
        )

    raise TranslationProviderConfigurationError(f"Unknown translation provider '{provider}'.")
