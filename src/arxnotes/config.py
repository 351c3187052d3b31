"""Runtime configuration for the notes pipeline."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Mapping

from arxnotes.errors import ConfigurationError


DEFAULT_UNSTRUCTURED_API_URL = "https://api.unstructuredapp.io/general/v0/general"
DEFAULT_NOTES_MODEL = "gpt-4-1106-preview"
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
DEFAULT_SEGMENT_TIMEOUT_SECONDS = 300.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_BASE_SECONDS = 0.5
DEFAULT_DB_PATH = ".arxnotes.db"


def _parse_positive_float(*, name: str, raw_value: str, minimum: float = 0.001) -> float:
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ConfigurationError(name, f"{name} must be a number") from exc
    if value < minimum:
        raise ConfigurationError(name, f"{name} must be >= {minimum}")
    return value


def _parse_non_negative_int(*, name: str, raw_value: str) -> int:
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ConfigurationError(name, f"{name} must be an integer") from exc
    if value < 0:
        raise ConfigurationError(name, f"{name} cannot be negative")
    return value


def _validate_http_url(*, name: str, value: str) -> str:
    if not (value.startswith("http://") or value.startswith("https://")):
        raise ConfigurationError(name, f"{name} must start with http:// or https://")
    return value.rstrip("/")


@dataclass(frozen=True, slots=True)
class NotesSettings:
    """Validated settings shared by every pipeline component.

    Credentials may be empty here; each component asks for the one it needs
    when it is constructed, so a missing key fails before any I/O happens.
    """

    unstructured_api_key: str = ""
    openai_api_key: str = ""
    unstructured_api_url: str = DEFAULT_UNSTRUCTURED_API_URL
    openai_base_url: str | None = None
    notes_model: str = DEFAULT_NOTES_MODEL
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    segment_timeout_seconds: float = DEFAULT_SEGMENT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_seconds: float = DEFAULT_RETRY_BASE_SECONDS
    staging_dir: Path | None = None
    db_path: Path = Path(DEFAULT_DB_PATH)

    def require_unstructured_api_key(self) -> str:
        if not self.unstructured_api_key:
            raise ConfigurationError("UNSTRUCTURED_API_KEY", "Layout-parsing API key is not set")
        return self.unstructured_api_key

    def require_openai_api_key(self) -> str:
        if not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY", "Language-model API key is not set")
        return self.openai_api_key

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "NotesSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        unstructured_url_raw = source.get("UNSTRUCTURED_API_URL", DEFAULT_UNSTRUCTURED_API_URL).strip()
        openai_base_url_raw = source.get("OPENAI_BASE_URL", "").strip()
        model_raw = source.get("ARXNOTES_NOTES_MODEL", DEFAULT_NOTES_MODEL).strip()
        fetch_timeout_raw = source.get("ARXNOTES_FETCH_TIMEOUT_SECONDS", str(DEFAULT_FETCH_TIMEOUT_SECONDS)).strip()
        segment_timeout_raw = source.get(
            "ARXNOTES_SEGMENT_TIMEOUT_SECONDS", str(DEFAULT_SEGMENT_TIMEOUT_SECONDS)
        ).strip()
        max_retries_raw = source.get("ARXNOTES_MAX_RETRIES", str(DEFAULT_MAX_RETRIES)).strip()
        retry_base_raw = source.get("ARXNOTES_RETRY_BASE_SECONDS", str(DEFAULT_RETRY_BASE_SECONDS)).strip()
        staging_dir_raw = source.get("ARXNOTES_STAGING_DIR", "").strip()
        db_path_raw = source.get("ARXNOTES_DB_PATH", DEFAULT_DB_PATH).strip()

        if not unstructured_url_raw:
            raise ConfigurationError("UNSTRUCTURED_API_URL", "UNSTRUCTURED_API_URL cannot be empty")
        if not model_raw:
            raise ConfigurationError("ARXNOTES_NOTES_MODEL", "ARXNOTES_NOTES_MODEL cannot be empty")
        if not db_path_raw:
            raise ConfigurationError("ARXNOTES_DB_PATH", "ARXNOTES_DB_PATH cannot be empty")

        return cls(
            unstructured_api_key=source.get("UNSTRUCTURED_API_KEY", "").strip(),
            openai_api_key=source.get("OPENAI_API_KEY", "").strip(),
            unstructured_api_url=_validate_http_url(name="UNSTRUCTURED_API_URL", value=unstructured_url_raw),
            openai_base_url=(
                _validate_http_url(name="OPENAI_BASE_URL", value=openai_base_url_raw)
                if openai_base_url_raw
                else None
            ),
            notes_model=model_raw,
            fetch_timeout_seconds=_parse_positive_float(
                name="ARXNOTES_FETCH_TIMEOUT_SECONDS",
                raw_value=fetch_timeout_raw,
                minimum=0.1,
            ),
            segment_timeout_seconds=_parse_positive_float(
                name="ARXNOTES_SEGMENT_TIMEOUT_SECONDS",
                raw_value=segment_timeout_raw,
                minimum=0.1,
            ),
            max_retries=_parse_non_negative_int(name="ARXNOTES_MAX_RETRIES", raw_value=max_retries_raw),
            retry_base_seconds=_parse_positive_float(
                name="ARXNOTES_RETRY_BASE_SECONDS",
                raw_value=retry_base_raw,
                minimum=0.0,
            ),
            staging_dir=Path(staging_dir_raw) if staging_dir_raw else None,
            db_path=Path(db_path_raw),
        )
