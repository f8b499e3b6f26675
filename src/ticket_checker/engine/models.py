# ticket_checker/engine/models.py

"""
Contains Pydantic models, enums and simple data classes defining the
data structures produced and consumed by the checking engine.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class MatchMode(str, Enum):
    """How a candidate's text is compared with the target title."""

    EXACT = "exact"
    PARTIAL = "partial"


class Confidence(str, Enum):
    HIGH = "high"
    REDUCED = "reduced"
    LOW = "low"


class DiagnosticCode(str, Enum):
    DEGRADED_SCOPE = "DegradedScope"
    LOCATOR_EXHAUSTED = "LocatorExhausted"
    STAGE_ABORTED = "StageAborted"
    CONTAINMENT_REJECTED = "ContainmentRejected"
    LAST_RESORT_MATCH = "LastResortMatch"
    AUTH_UNVERIFIED = "AuthUnverified"
    RUN_DEADLINE_EXCEEDED = "RunDeadlineExceeded"
    EVIDENCE_CAPTURE_FAILED = "EvidenceCaptureFailed"
    UNEXPECTED_ERROR = "UnexpectedError"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Invocation Inputs ---


class Credentials(BaseModel):
    """Login identity and secret, resolved once per configuration."""

    model_config = ConfigDict(frozen=True)

    identity: str = Field(..., min_length=1, description="Login email or username.")
    secret: SecretStr = Field(..., description="Login password.")


class SearchCriteria(BaseModel):
    """What to look for, and where."""

    model_config = ConfigDict(frozen=True)

    project_name: str = Field("Test Support", min_length=1)
    section_label: str = Field("Resolved", min_length=1)
    title: str = Field(..., min_length=1, description="Ticket title to match.")
    match_mode: MatchMode = MatchMode.PARTIAL


# --- Verdict & Evidence ---


class EvidenceArtifact(BaseModel):
    """A full-page screenshot captured at one lifecycle stage."""

    model_config = ConfigDict(frozen=True)

    stage: str
    path: str
    captured_at: datetime = Field(default_factory=utcnow)


class Diagnostic(BaseModel):
    """A recorded observation that qualifies the verdict."""

    model_config = ConfigDict(frozen=True)

    code: DiagnosticCode
    stage: str
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}[{self.stage}]: {self.message}"


class Verdict(BaseModel):
    """
    The terminal outcome of one run. Always produced, even when a stage
    aborts; in that case `found` is False and `error` carries the reason.
    """

    model_config = ConfigDict(frozen=True)

    found: bool
    matched_text: str | None = None
    confidence: Confidence = Confidence.HIGH
    scoped: bool = False
    evidence: tuple[EvidenceArtifact, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()
    error: str | None = None
    failed_step: str | None = None
    criteria: SearchCriteria | None = None
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime = Field(default_factory=utcnow)

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def answer(self) -> str:
        return "Yes" if self.found else "No"

    def has_diagnostic(self, code: DiagnosticCode | str) -> bool:
        value = code.value if isinstance(code, DiagnosticCode) else code
        return any(d.code.value == value for d in self.diagnostics)

    def to_result(self) -> dict[str, Any]:
        """Serializes the verdict into the caller-facing result shape."""
        result: dict[str, Any] = {
            "success": self.success,
            "found": self.found,
            "answer": self.answer,
            "confidence": self.confidence.value,
            "scoped": self.scoped,
            "diagnostics": [d.model_dump(mode="json") for d in self.diagnostics],
            "evidence": [e.model_dump(mode="json") for e in self.evidence],
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat(),
        }
        if self.matched_text is not None:
            result["matchedText"] = self.matched_text
        if self.error is not None:
            result["error"] = self.error
        if self.failed_step is not None:
            result["failedStep"] = self.failed_step
        if self.criteria is not None:
            result["searchCriteria"] = {
                "projectName": self.criteria.project_name,
                "sectionName": self.criteria.section_label,
                "ticketTitle": self.criteria.title,
                "matchMode": self.criteria.match_mode.value,
            }
        return result


# --- Search Internals ---


@dataclass
class Candidate:
    """A record-like element seen during the search. Never leaves the engine."""

    display_text: str
    visible: bool
    in_section: bool | None = None


@dataclass(frozen=True)
class SearchOutcome:
    """What the containment search hands back to the runner."""

    found: bool
    matched_text: str | None
    confidence: Confidence
    scoped: bool
    diagnostics: tuple[Diagnostic, ...] = ()
