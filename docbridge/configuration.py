"""Prepper-backed configuration loader for Docbridge."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

from dotenv import dotenv_values
from prepper import (
    ConfigNotFound,
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import TranslationProviderConfigurationError

APP_NAME = "Docbridge"

_PROVIDER_SYNONYMS = {
    "azure_open_ai": "azure_openai",
    "azureopenai": "azure_openai",
    "noop": "echo",
    "mock": "echo",
}

_AZURE_SETTINGS = (
    "AZURE_OPENAI_API_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "AZURE_OPENAI_API_VERSION",
    "AZURE_OPENAI_DEPLOYMENT_NAME",
)
_BUDGET_SETTINGS = (
    "DOCBRIDGE_MAX_CHUNK_SEGMENTS",
    "DOCBRIDGE_MAX_CHUNK_CHARACTERS",
    "DOCBRIDGE_WHOLE_DOCUMENT_CHARACTERS",
    "DOCBRIDGE_MAX_WORKERS",
)


class DocbridgeConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    LLM_PROVIDER: Literal["azure_openai", "openai", "echo"] = Field(
        default="openai",
        description="Translation service selection; 'echo' returns text unchanged.",
    )
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    DOCBRIDGE_MODEL: str | None = Field(
        default=None,
        description="Chat model used for translation.",
    )
    DOCBRIDGE_MAX_CHUNK_SEGMENTS: int = Field(
        default=50,
        description="Maximum segments per chunk for large documents.",
    )
    DOCBRIDGE_MAX_CHUNK_CHARACTERS: int = Field(
        default=5000,
        description="Maximum characters per chunk for large documents.",
    )
    DOCBRIDGE_WHOLE_DOCUMENT_CHARACTERS: int = Field(
        default=50000,
        description="Character budget per call when a document is sent whole.",
    )
    DOCBRIDGE_MAX_WORKERS: int = Field(
        default=1,
        description="Concurrent translation calls per document.",
    )
    DOCBRIDGE_PROVIDER_DEBUG: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_provider(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("LLM_PROVIDER")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower().replace("-", "_")
                normalized = _PROVIDER_SYNONYMS.get(normalized, normalized)
                if normalized not in {"openai", "azure_openai", "echo"}:
                    normalized = "openai"
                data["LLM_PROVIDER"] = normalized
        return data


def _read_layers(app_dir: Path, provenance: ProvenanceRecorder) -> dict[str, Any]:
    """Collect YAML files, then ``.env``, then the process environment.

    Later layers win. Environment entries that are not schema fields are
    ignored.
    """

    combined: dict[str, Any] = {}
    for path, label in discover_file_paths(APP_NAME, "yaml", app_dir=app_dir, extra_paths=None):
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(f"Invalid configuration file {path}: expected a mapping at the root.")
        merge_layer(
            combined,
            parsed,
            provenance=provenance,
            source=_path_to_source(label, "yaml", path),
            layer="file",
        )

    dotenv_path = app_dir / ".env"
    environments = [
        (".env", dotenv_values(dotenv_path) if dotenv_path.exists() else {}),
        ("process", os.environ),
    ]
    fields = DocbridgeConfig.__field_infos__
    for label, values in environments:
        for key, value in sorted(values.items()):
            if value is None or key not in fields:
                continue
            merge_layer(
                combined,
                {key: value},
                provenance=provenance,
                source=f"env:{label}:{key}",
                layer="env",
            )
    return combined


@lru_cache(maxsize=1)
def _load_settings(app_dir: Path | None = None) -> DocbridgeConfig:
    provenance = ProvenanceRecorder()
    try:
        combined = _read_layers(app_dir or Path.cwd(), provenance)
        if not combined:
            raise ConfigNotFound("No configuration sources were found.")
        model = DocbridgeConfig.validate(combined, provenance=provenance)
    except ConfigNotFound as exc:
        raise TranslationProviderConfigurationError(
            "No configuration sources were found. Provide settings via a home YAML "
            "file, a local config.yaml, a .env file, or environment variables."
        ) from exc
    except (IoError, SchemaError) as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration could not be loaded: {exc}"
        ) from exc
    except ValidationError as exc:
        raise TranslationProviderConfigurationError(
            _format_validation_errors(exc.to_dict())
        ) from exc

    validate_settings(model)
    return model


def validate_settings(settings: Any) -> None:
    """Check provider credentials and numeric budgets of a settings model."""

    errors: list[str] = []
    if settings.LLM_PROVIDER == "openai" and not settings.OPENAI_API_KEY:
        errors.append("OPENAI_API_KEY is required when LLM_PROVIDER is 'openai'.")
    elif settings.LLM_PROVIDER == "azure_openai":
        missing = [name for name in _AZURE_SETTINGS if not getattr(settings, name)]
        if missing:
            errors.append(
                "The following Azure OpenAI settings must be provided when "
                f"LLM_PROVIDER is 'azure_openai': {', '.join(missing)}."
            )

    for name in _BUDGET_SETTINGS:
        if int(getattr(settings, name)) < 1:
            errors.append(f"{name} must be a positive integer.")

    if errors:
        raise TranslationProviderConfigurationError(
            "Configuration validation errors detected:\n"
            + "\n".join(f"- {message}" for message in errors)
        )


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        prefix = f"{location}: " if location else ""
        origin = f" (source: {source})" if source else ""
        details.append(f"- {prefix}{message}{origin}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def get_settings(app_dir: Path | None = None) -> DocbridgeConfig:
    """Return the validated settings, loading them on first use."""

    return _load_settings(app_dir=app_dir)
