import time
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
import structlog

from .models import Diagnostic, DiagnosticCode, EvidenceArtifact
from .session import BrowserSession

logger = structlog.get_logger(__name__)


class EvidenceRecorder:
    """
    Captures full-page screenshots named `screenshot_<stage>_<epoch-ms>.png`.

    Artifacts are purely diagnostic: a failed capture is recorded as a
    diagnostic and never interrupts the run.
    """

    CAPTURE_TIMEOUT_MS = 5000

    def __init__(self, artifacts_dir: Path, enabled: bool = True):
        self.artifacts_dir = Path(artifacts_dir)
        self.enabled = enabled
        self._artifacts: list[EvidenceArtifact] = []
        self._diagnostics: list[Diagnostic] = []

    @property
    def artifacts(self) -> tuple[EvidenceArtifact, ...]:
        return tuple(self._artifacts)

    @property
    def diagnostics(self) -> tuple[Diagnostic, ...]:
        return tuple(self._diagnostics)

    def path_for(self, stage: str) -> Path:
        return self.artifacts_dir / f"screenshot_{stage}_{int(time.time() * 1000)}.png"

    async def capture(self, session: BrowserSession | None, stage: str) -> EvidenceArtifact | None:
        if not self.enabled or session is None or not session.is_open:
            return None
        path = self.path_for(stage)
        try:
            self.artifacts_dir.mkdir(parents=True, exist_ok=True)
            await session.screenshot(path, timeout=self.CAPTURE_TIMEOUT_MS)
        except (PlaywrightError, OSError) as e:
            logger.warning("❌ Failed to capture screenshot.", stage=stage, error=str(e))
            self._diagnostics.append(
                Diagnostic(
                    code=DiagnosticCode.EVIDENCE_CAPTURE_FAILED,
                    stage=stage,
                    message=str(e),
                )
            )
            return None
        artifact = EvidenceArtifact(stage=stage, path=str(path))
        self._artifacts.append(artifact)
        logger.info(f"📸 Screenshot saved: {path}", stage=stage)
        return artifact
