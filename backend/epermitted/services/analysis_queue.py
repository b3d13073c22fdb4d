"""
E-Permitted Backend — Analysis Queue (Background AI Annotation)
================================================================

What:  Runs the AI review of newly submitted applications off the request path.
How:   `submit()` schedules a detached asyncio task and returns at once. The
       task opens its own database session, builds the prompt, calls the
       LLM service and writes the outcome onto `Application.ai_analysis`.
Who:   Created by the app factory, stored on `app.state.analysis_queue`,
       fed by ApplicationService.submit(), drained during shutdown.

Outcome records:
    success → {"analysis": "<text>", "analyzedAt": "<ISO-8601>", "model": "<name>"}
    failure → {"error": "<message>", "analyzedAt": "<ISO-8601>"}

Failures are never raised to the submitter; they are logged, recorded on the
row and counted in `stats()` (shown on /health).
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set
from uuid import UUID

from epermitted.database import Database
from epermitted.exceptions import EPermittedError
from epermitted.models import Application
from epermitted.services.llm_base import LLMService

logger = logging.getLogger(__name__)


def build_analysis_prompt(application: Application) -> str:
    """Prompt sent to the LLM for one application."""
    applicant = application.user.full_name if application.user else "Unknown applicant"
    return (
        f"Analyze this permit application for {application.permit_type.name} "
        f"with {application.council.name}.\n\n"
        f"Applicant: {applicant}\n"
        f"Application data:\n"
        f"{json.dumps(application.data, indent=2, default=str)}\n\n"
        "Please provide:\n"
        "1. Completeness check\n"
        "2. Potential issues or concerns\n"
        "3. Recommendations for the applicant\n"
        "4. Estimated processing time\n"
        "5. Risk assessment (low/medium/high)"
    )


@dataclass
class QueueStats:
    submitted: int = 0
    succeeded: int = 0
    failed: int = 0


class AnalysisQueue:
    """
    In-process background queue for AI analysis.

    Each submission becomes one asyncio task; references to running tasks
    are held in `_tasks` so they are not garbage-collected mid-flight and
    so `drain()` can wait for them.
    """

    def __init__(
        self,
        database: Database,
        llm_service: Optional[LLMService],
        enabled: bool = True,
    ):
        self.database = database
        self.llm_service = llm_service
        self.enabled = enabled and llm_service is not None
        self._tasks: Set[asyncio.Task] = set()
        self._stats = QueueStats()

    async def submit(self, application_id: UUID) -> None:
        """Schedule analysis of a committed application; returns immediately."""
        if not self.enabled:
            logger.debug("Analysis disabled; skipping application %s", application_id)
            return

        task = asyncio.create_task(
            self._run(application_id),
            name=f"analysis-{application_id}",
        )
        self._stats.submitted += 1
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every in-flight analysis to finish (shutdown, tests)."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            _, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                logger.warning(
                    "Analysis queue drain timed out with %d task(s) still running",
                    len(not_done),
                )
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)
                return

    def stats(self) -> Dict[str, Any]:
        stats = asdict(self._stats)
        stats["in_flight"] = sum(1 for task in self._tasks if not task.done())
        stats["enabled"] = self.enabled
        return stats

    async def _run(self, application_id: UUID) -> None:
        try:
            await self._analyze(application_id)
        except asyncio.CancelledError:
            self._stats.failed += 1
            raise
        except Exception:
            # Recording the failure itself failed (database unavailable)
            self._stats.failed += 1
            logger.exception("Analysis of application %s could not be recorded", application_id)

    async def _analyze(self, application_id: UUID) -> None:
        async with self.database.session() as session:
            application = await session.get(Application, application_id)
            if application is None:
                logger.warning("Application %s vanished before analysis", application_id)
                self._stats.failed += 1
                return
            prompt = build_analysis_prompt(application)
            reference = application.reference

        try:
            analysis = await self.llm_service.generate_analysis(prompt)
            outcome = {
                "analysis": analysis,
                "analyzedAt": _now_iso(),
                "model": self.llm_service.model_name,
            }
            succeeded = True
        except EPermittedError as e:
            logger.warning("AI analysis failed for %s: %s", reference, e.message)
            outcome = {"error": e.message, "analyzedAt": _now_iso()}
            succeeded = False
        except Exception as e:
            logger.error("Unexpected AI analysis error for %s: %s", reference, str(e), exc_info=True)
            outcome = {"error": str(e) or type(e).__name__, "analyzedAt": _now_iso()}
            succeeded = False

        async with self.database.session() as session:
            application = await session.get(Application, application_id)
            if application is None:
                self._stats.failed += 1
                return
            application.ai_analysis = outcome

        if succeeded:
            self._stats.succeeded += 1
            logger.info("AI analysis recorded for %s", reference)
        else:
            self._stats.failed += 1


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
