"""
Render job orchestration.

Runs a render request through credential resolution, the budget check and
the provider adapter, and keeps each job's ``RenderResult`` current as the
provider reports progress.

Usage:
    service = RenderService(resolver)
    job = await service.create_job("ws_1", "runway-gen4", RenderRequest("Harbor at dawn", 8))
    job = await service.poll_job(job.job_id)
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..core.config import Settings, settings as default_settings
from ..core.errors import (
    BudgetExceeded,
    IntegrationError,
    JobNotFound,
    NotConfigured,
    TransientNetworkError,
)
from ..credentials.resolver import CredentialResolver
from ..video.budget import LedgerStatus, RenderBudget
from ..video.registry import (
    TEST_RENDER_MAX_SECONDS,
    estimate_cost,
    estimate_test_render_cost,
    get_provider,
)
from .adapters import RenderAdapter, RenderRequest, default_adapters
from .models import MISSING_API_KEY, NextAction, RenderResult, RenderStatus

logger = logging.getLogger(__name__)


@dataclass
class _Job:
    workspace_id: str
    result: RenderResult
    provider_job_id: Optional[str] = None
    ledger_entry_id: Optional[str] = None
    estimated_cost_usd: float = 0.0


class RenderService:
    """In-memory render jobs. A retry is always a new ``create_job`` call."""

    def __init__(
        self,
        resolver: CredentialResolver,
        budget: Optional[RenderBudget] = None,
        adapters: Optional[dict[str, RenderAdapter]] = None,
        config: Optional[Settings] = None,
    ):
        self.resolver = resolver
        self.config = config or default_settings
        self.budget = budget or RenderBudget(config=self.config)
        self.adapters = adapters if adapters is not None else default_adapters(self.config)
        self._jobs: dict[str, _Job] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get_job(self, job_id: str) -> RenderResult:
        """
        Current state of a job.

        Raises:
            JobNotFound: unknown job id
        """
        return self._job(job_id).result

    def _job(self, job_id: str) -> _Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(f"Render job not found: {job_id}")
        return job

    def _store(self, job: _Job) -> RenderResult:
        self._jobs[job.result.job_id] = job
        self._locks.setdefault(job.result.job_id, asyncio.Lock())
        return job.result

    async def create_job(
        self,
        workspace_id: str,
        provider_id: str,
        request: RenderRequest,
        *,
        test_render: bool = False,
    ) -> RenderResult:
        """
        Start a render job.

        Never raises for provider or budget problems; the returned result
        carries the terminal status, error code and next action instead.

        Raises:
            UnknownProviderError: provider_id is not in the registry
        """
        meta = get_provider(provider_id)
        duration = meta.clamp_duration(request.duration_seconds)
        job = _Job(
            workspace_id=workspace_id,
            result=RenderResult(provider_id=provider_id, duration_seconds=duration),
        )

        adapter = self.adapters.get(provider_id)
        if adapter is None:
            job.result = job.result.transition(
                RenderStatus.FAILED,
                error=f"{meta.name} rendering is not available yet",
                error_code="PROVIDER_UNAVAILABLE",
            )
            return self._store(job)

        api_key: Optional[str] = None
        if meta.requires_api_key:
            try:
                credential = await self.resolver.resolve(meta.credential_id, workspace_id)
            except NotConfigured as e:
                logger.info(f"Render for {workspace_id} waiting on {meta.name} credentials ({e.code})")
                job.result = job.result.transition(
                    RenderStatus.AWAITING_PROVIDER,
                    error=e.message,
                    error_code=MISSING_API_KEY,
                    next_action=NextAction.connect_provider(meta.name),
                )
                return self._store(job)
            except IntegrationError as e:
                return self._store(self._fail(job, e))
            api_key = credential.value

        if test_render:
            if not meta.supports_test_render:
                job.result = job.result.transition(
                    RenderStatus.FAILED,
                    error=f"{meta.name} does not offer test renders",
                    error_code="TEST_RENDER_UNSUPPORTED",
                )
                return self._store(job)
            duration = min(TEST_RENDER_MAX_SECONDS, meta.max_duration_seconds)
            request = RenderRequest(
                prompt=request.prompt,
                duration_seconds=duration,
                aspect_ratio=request.aspect_ratio,
                model=request.model,
            )
            cost = estimate_test_render_cost(provider_id)
        else:
            cost = estimate_cost(provider_id, duration)
        job.estimated_cost_usd = cost

        try:
            job.ledger_entry_id = self.budget.reserve(workspace_id, provider_id, cost, duration)
        except BudgetExceeded as e:
            job.result = job.result.transition(
                RenderStatus.BUDGET_EXCEEDED,
                error=e.message,
                error_code=e.code,
                next_action=NextAction.upgrade(),
            )
            return self._store(job)

        try:
            submitted = await adapter.submit(request, api_key)
        except IntegrationError as e:
            logger.warning(f"{meta.name} submit failed for {workspace_id}: {e.code} {e.message}")
            self.budget.release(job.ledger_entry_id)
            job.ledger_entry_id = None
            return self._store(self._fail(job, e))

        job.provider_job_id = submitted.provider_job_id
        self.budget.attach_provider_job(job.ledger_entry_id, submitted.provider_job_id)
        job.result = job.result.model_copy(update={"estimated_seconds": int(duration)})

        if submitted.status == RenderStatus.COMPLETED:
            job.result = job.result.transition(
                RenderStatus.COMPLETED,
                preview_url=submitted.preview_url,
                frames=submitted.frames or None,
            )
            self.budget.record_outcome(job.ledger_entry_id, LedgerStatus.COMPLETED, actual_cost_usd=cost)

        logger.info(f"Render job {job.result.job_id} {job.result.status.value} on {meta.name}")
        return self._store(job)

    def _fail(self, job: _Job, error: IntegrationError) -> _Job:
        if error.code == MISSING_API_KEY:
            action = NextAction.connect_provider(get_provider(job.result.provider_id).name)
        else:
            action = NextAction.retry()
        job.result = job.result.transition(
            RenderStatus.FAILED,
            error=error.message,
            error_code=error.code,
            next_action=action,
        )
        return job

    async def poll_job(self, job_id: str) -> RenderResult:
        """
        Ask the provider for progress and advance the job.

        Terminal jobs are returned unchanged. A timeout while polling leaves
        the job as it was so the caller can poll again.

        Raises:
            JobNotFound: unknown job id
        """
        job = self._job(job_id)
        async with self._locks[job_id]:
            if job.result.is_terminal or job.provider_job_id is None:
                return job.result

            meta = get_provider(job.result.provider_id)
            adapter = self.adapters[job.result.provider_id]
            try:
                api_key = None
                if meta.requires_api_key:
                    api_key = (await self.resolver.resolve(meta.credential_id, job.workspace_id)).value
                polled = await adapter.poll(job.provider_job_id, api_key)
            except TransientNetworkError as e:
                logger.warning(f"Polling {job_id} failed transiently: {e.message}")
                return job.result
            except IntegrationError as e:
                self._fail(job, e)
                self._record_outcome(job)
                return job.result

            if polled.status == RenderStatus.PROCESSING:
                job.result = job.result.transition(RenderStatus.PROCESSING, progress=polled.progress)
            elif polled.status == RenderStatus.COMPLETED:
                if polled.output_url:
                    job.result = job.result.transition(
                        RenderStatus.COMPLETED,
                        output_url=polled.output_url,
                        thumbnail_url=polled.thumbnail_url,
                    )
                else:
                    job.result = job.result.transition(
                        RenderStatus.FAILED,
                        error=f"{meta.name} finished without an output video",
                        error_code="EMPTY_OUTPUT",
                        next_action=NextAction.retry(),
                    )
            elif polled.status == RenderStatus.FAILED:
                job.result = job.result.transition(
                    RenderStatus.FAILED,
                    error=polled.error_message or f"{meta.name} render failed",
                    error_code="RENDER_FAILED",
                    next_action=NextAction.retry(),
                )

            if job.result.is_terminal:
                self._record_outcome(job)
            return job.result

    def _record_outcome(self, job: _Job) -> None:
        if job.ledger_entry_id is None:
            return
        if job.result.status == RenderStatus.COMPLETED:
            self.budget.record_outcome(
                job.ledger_entry_id, LedgerStatus.COMPLETED, actual_cost_usd=job.estimated_cost_usd
            )
        else:
            self.budget.record_outcome(job.ledger_entry_id, LedgerStatus.FAILED, error_message=job.result.error)

    async def close(self) -> None:
        for adapter in self.adapters.values():
            await adapter.close()
