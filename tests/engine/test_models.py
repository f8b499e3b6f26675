import pytest
from pydantic import ValidationError

from ticket_checker.engine.models import (
    Confidence,
    Credentials,
    Diagnostic,
    DiagnosticCode,
    MatchMode,
    SearchCriteria,
    Verdict,
)


def test_criteria_defaults():
    criteria = SearchCriteria(title="Testing")

    assert criteria.project_name == "Test Support"
    assert criteria.section_label == "Resolved"
    assert criteria.match_mode == MatchMode.PARTIAL


def test_criteria_reject_empty_title():
    with pytest.raises(ValidationError):
        SearchCriteria(title="")


def test_credentials_hide_the_secret():
    creds = Credentials(identity="qa@example.test", secret="s3cret!")

    assert "s3cret!" not in repr(creds)
    assert creds.secret.get_secret_value() == "s3cret!"


def test_diagnostic_renders_code_and_stage():
    diagnostic = Diagnostic(
        code=DiagnosticCode.DEGRADED_SCOPE, stage="search", message="whole page"
    )

    assert str(diagnostic) == "DegradedScope[search]: whole page"


def test_error_verdict_result_shape():
    verdict = Verdict(
        found=False,
        confidence=Confidence.LOW,
        error="stage aborted: navigation",
        failed_step="projects",
    )

    result = verdict.to_result()

    assert verdict.success is False
    assert result["success"] is False
    assert result["answer"] == "No"
    assert result["error"] == "stage aborted: navigation"
    assert result["failedStep"] == "projects"
    assert "matchedText" not in result
    assert "searchCriteria" not in result


def test_verdict_is_immutable():
    verdict = Verdict(found=True, matched_text="Testing")

    with pytest.raises(ValidationError):
        verdict.found = False
