import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from ..config import BrowserOptions, CheckerConfig
from .auth import Authenticator
from .evidence import EvidenceRecorder
from .exceptions import CheckerError, StageAbortedError
from .models import (
    Confidence,
    Diagnostic,
    DiagnosticCode,
    SearchOutcome,
    Verdict,
    utcnow,
)
from .navigation import NavigationSequencer
from .search import ContainmentSearchEngine
from .session import BrowserSession

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[BrowserOptions], BrowserSession]


@dataclass
class _RunContext:
    evidence: EvidenceRecorder
    diagnostics: list[Diagnostic] = field(default_factory=list)
    outcome: SearchOutcome | None = None
    error: str | None = None
    failed_step: str | None = None

    def note(self, code: DiagnosticCode, stage: str, message: str) -> None:
        self.diagnostics.append(Diagnostic(code=code, stage=stage, message=message))


class TicketChecker:
    """
    Runs authenticate -> navigate -> search against one private browser
    session and always resolves to a Verdict.

    The session is acquired with `async with`, so it is released exactly once
    on every exit path before the verdict is returned. Failures are turned
    into the verdict's error and diagnostics; only task cancellation is
    allowed to propagate (after the session has been released).
    """

    def __init__(
        self,
        config: CheckerConfig,
        session_factory: SessionFactory | None = None,
    ):
        self.config = config
        self.session_factory = session_factory or BrowserSession
        self.run_id = uuid.uuid4().hex[:12]

    async def run(self) -> Verdict:
        started_at = utcnow()
        criteria = self.config.criteria
        log = logger.bind(run_id=self.run_id)
        log.info(
            "🚀 Starting ticket check.",
            project=criteria.project_name,
            section=criteria.section_label,
            title=criteria.title,
            match_mode=criteria.match_mode.value,
        )
        ctx = _RunContext(
            evidence=EvidenceRecorder(
                self.config.artifacts_dir, enabled=self.config.capture_screenshots
            )
        )
        deadline = self.config.timeouts.run_deadline_s

        try:
            if deadline:
                async with asyncio.timeout(deadline):
                    await self._execute(ctx)
            else:
                await self._execute(ctx)
        except StageAbortedError as e:
            ctx.error = str(e)
            ctx.failed_step = e.step
            ctx.note(
                DiagnosticCode.STAGE_ABORTED,
                e.stage,
                f"{e.step or e.stage}: {e.reason or e}",
            )
        except TimeoutError:
            ctx.error = "run deadline exceeded"
            ctx.note(
                DiagnosticCode.RUN_DEADLINE_EXCEEDED,
                "run",
                f"Run did not finish within {deadline}s.",
            )
        except CheckerError as e:
            ctx.error = str(e)
            ctx.note(DiagnosticCode.UNEXPECTED_ERROR, "run", str(e))
        except Exception as e:
            log.error("❌ Check failed with an unexpected error.", exc_info=True)
            ctx.error = f"{type(e).__name__}: {e}"
            ctx.note(DiagnosticCode.UNEXPECTED_ERROR, "run", ctx.error)

        verdict = self._build_verdict(ctx, started_at)
        log.info(
            "📊 Final result.",
            found=verdict.found,
            answer=verdict.answer,
            success=verdict.success,
            error=verdict.error,
        )
        return verdict

    async def _execute(self, ctx: _RunContext) -> None:
        async with self.session_factory(self.config.browser) as session:
            try:
                auth = await Authenticator(session, self.config).run()
                if not auth.verified:
                    ctx.note(
                        DiagnosticCode.AUTH_UNVERIFIED,
                        Authenticator.STAGE,
                        "No authenticated-state indicator appeared after login; "
                        "continued after the fixed settle delay.",
                    )
                await ctx.evidence.capture(session, "after_login")

                await NavigationSequencer(session, self.config).run()
                await ctx.evidence.capture(session, "after_navigation")

                engine = ContainmentSearchEngine(
                    session.page, self.config.criteria, self.config.timeouts
                )
                ctx.outcome = await engine.search()
                await ctx.evidence.capture(session, "after_check")
            except (Exception, asyncio.CancelledError):
                # A deadline abort arrives here as cancellation, before release.
                await ctx.evidence.capture(session, "error")
                raise

    def _build_verdict(self, ctx: _RunContext, started_at) -> Verdict:
        outcome = ctx.outcome
        diagnostics = list(ctx.diagnostics)
        if outcome is not None:
            diagnostics.extend(outcome.diagnostics)
        diagnostics.extend(ctx.evidence.diagnostics)

        found = ctx.error is None and outcome is not None and outcome.found
        return Verdict(
            found=found,
            matched_text=outcome.matched_text if found else None,
            confidence=outcome.confidence if outcome else Confidence.LOW,
            scoped=outcome.scoped if outcome else False,
            evidence=ctx.evidence.artifacts,
            diagnostics=tuple(diagnostics),
            error=ctx.error,
            failed_step=ctx.failed_step,
            criteria=self.config.criteria,
            started_at=started_at,
            finished_at=utcnow(),
        )


async def check_ticket(
    config: CheckerConfig, session_factory: SessionFactory | None = None
) -> Verdict:
    """Convenience wrapper: one run, one verdict."""
    return await TicketChecker(config, session_factory=session_factory).run()
