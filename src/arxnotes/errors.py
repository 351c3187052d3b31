"""Failure taxonomy shared by every pipeline stage."""

from __future__ import annotations

from dataclasses import dataclass, field


class NotesPipelineError(Exception):
    """Base class for pipeline failures.

    ``stage`` is filled in by the orchestrator so the caller can tell which
    step failed; components leave it unset.
    """

    retryable = False
    stage: str | None = None

    def describe(self) -> str:
        return super().__str__()

    def with_stage(self, stage: str) -> "NotesPipelineError":
        self.stage = stage
        return self

    def __str__(self) -> str:
        detail = self.describe()
        if self.stage:
            return f"{self.stage} failed: {detail}"
        return detail


@dataclass(slots=True)
class InvalidInputError(NotesPipelineError):
    """Caller supplied an unusable URL or page argument."""

    message: str

    def describe(self) -> str:
        return self.message


@dataclass(slots=True)
class ConfigurationError(NotesPipelineError):
    """A required setting is missing or malformed."""

    variable: str
    message: str

    def describe(self) -> str:
        return f"{self.message} (variable={self.variable})"


@dataclass(slots=True)
class NetworkError(NotesPipelineError):
    """Remote PDF could not be retrieved."""

    url: str
    message: str
    status_code: int | None = None

    retryable = True

    def describe(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (url={self.url}, status={self.status_code})"
        return f"{self.message} (url={self.url})"


@dataclass(slots=True)
class MalformedPdfError(NotesPipelineError):
    message: str

    def describe(self) -> str:
        return self.message


@dataclass(slots=True)
class InvalidPageError(NotesPipelineError):
    """Requested page numbers are out of range, duplicated or unsorted."""

    page: int
    message: str
    page_count: int | None = None

    def describe(self) -> str:
        if self.page_count is not None:
            return f"{self.message} (page={self.page}, page_count={self.page_count})"
        return f"{self.message} (page={self.page})"


@dataclass(slots=True)
class SegmentationError(NotesPipelineError):
    """Layout-parsing service failed or returned an unusable payload."""

    message: str
    status_code: int | None = None

    retryable = True

    def describe(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status={self.status_code})"
        return self.message


@dataclass(slots=True)
class ExtractionError(NotesPipelineError):
    """Model call failed or its structured output did not match the note schema."""

    model: str
    message: str

    retryable = True

    def describe(self) -> str:
        return f"{self.message} (model={self.model})"


@dataclass(slots=True)
class PersistenceError(NotesPipelineError):
    """One or both persistence sinks failed; every failure is listed."""

    failures: dict[str, BaseException] = field(default_factory=dict)

    def describe(self) -> str:
        parts = [f"{sink}: {error}" for sink, error in self.failures.items()]
        return "; ".join(parts) or "unknown persistence failure"
