"""
Render budget enforcement.

Checks workspace caps before a render is submitted and keeps an append-only
ledger of submissions and outcomes. Two caps apply per workspace:

    - monthly spend (USD, estimated cost of submitted renders this month)
    - daily attempts (submitted renders today)
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from ..core.config import Settings, settings as default_settings
from ..core.errors import BudgetExceeded

logger = logging.getLogger(__name__)


class LedgerStatus(str, Enum):
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BudgetLimits:
    monthly_usd: float
    daily_attempts: int


@dataclass
class BudgetCheckResult:
    """Result of a budget check."""
    allowed: bool
    monthly_spent: float
    monthly_limit: float
    daily_attempts: int
    daily_limit: int
    reason: str = ""

    @property
    def monthly_remaining(self) -> float:
        return max(0.0, round(self.monthly_limit - self.monthly_spent, 2))

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "monthly_spent": self.monthly_spent,
            "monthly_limit": self.monthly_limit,
            "daily_attempts": self.daily_attempts,
            "daily_limit": self.daily_limit,
        }


@dataclass
class RenderLedgerEntry:
    """One submitted render."""
    workspace_id: str
    provider_id: str
    estimated_cost_usd: float
    duration_seconds: float
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    provider_job_id: Optional[str] = None
    status: LedgerStatus = LedgerStatus.SUBMITTED
    actual_cost_usd: Optional[float] = None
    error_message: Optional[str] = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None


class RenderBudget:
    """
    Per-workspace render caps over an in-memory ledger.

    Usage:
        budget = RenderBudget()
        check = budget.check("ws_1", estimate_cost("runway-gen4", 8))
        if check.allowed:
            entry_id = budget.record_submission("ws_1", "runway-gen4", 2.72, 8)
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config or default_settings
        self.clock = clock
        self._limits: dict[str, BudgetLimits] = {}
        self._ledger: dict[str, RenderLedgerEntry] = {}

    def limits_for(self, workspace_id: str) -> BudgetLimits:
        return self._limits.get(workspace_id) or BudgetLimits(
            monthly_usd=self.config.render_budget_monthly_usd,
            daily_attempts=self.config.render_attempts_daily_max,
        )

    def set_limits(
        self,
        workspace_id: str,
        monthly_usd: Optional[float] = None,
        daily_attempts: Optional[int] = None,
    ) -> BudgetLimits:
        """Override caps for one workspace. Unset values keep the defaults."""
        current = self.limits_for(workspace_id)
        limits = BudgetLimits(
            monthly_usd=current.monthly_usd if monthly_usd is None else monthly_usd,
            daily_attempts=current.daily_attempts if daily_attempts is None else daily_attempts,
        )
        self._limits[workspace_id] = limits
        return limits

    def _usage(self, workspace_id: str) -> tuple[float, int]:
        now = self.clock()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

        monthly_spent = 0.0
        daily_attempts = 0
        for entry in self._ledger.values():
            if entry.workspace_id != workspace_id:
                continue
            if entry.submitted_at >= month_start:
                monthly_spent += entry.estimated_cost_usd
            if entry.submitted_at >= day_start:
                daily_attempts += 1
        return round(monthly_spent, 2), daily_attempts

    def check(self, workspace_id: str, estimated_cost_usd: float) -> BudgetCheckResult:
        """
        Check whether a render of the given estimated cost may be submitted.

        Args:
            workspace_id: Workspace requesting the render
            estimated_cost_usd: Cost estimate from the provider registry

        Returns:
            BudgetCheckResult with allowed status and current usage
        """
        limits = self.limits_for(workspace_id)
        monthly_spent, daily_attempts = self._usage(workspace_id)
        result = BudgetCheckResult(
            allowed=True,
            monthly_spent=monthly_spent,
            monthly_limit=limits.monthly_usd,
            daily_attempts=daily_attempts,
            daily_limit=limits.daily_attempts,
        )

        if monthly_spent + estimated_cost_usd > limits.monthly_usd:
            result.allowed = False
            result.reason = (
                f"Monthly render budget exceeded: ${monthly_spent:.2f} spent "
                f"of ${limits.monthly_usd:.2f} limit"
            )
        elif daily_attempts >= limits.daily_attempts:
            result.allowed = False
            result.reason = f"Daily render limit reached: {daily_attempts}/{limits.daily_attempts} attempts today"

        if not result.allowed:
            logger.info(f"Render budget exceeded for {workspace_id}: {result.reason}")
        return result

    def enforce(self, workspace_id: str, estimated_cost_usd: float) -> BudgetCheckResult:
        """
        Like ``check`` but raises when the render is not allowed.

        Raises:
            BudgetExceeded: a cap would be exceeded
        """
        result = self.check(workspace_id, estimated_cost_usd)
        if not result.allowed:
            raise BudgetExceeded(result.reason)
        return result

    def record_submission(
        self,
        workspace_id: str,
        provider_id: str,
        estimated_cost_usd: float,
        duration_seconds: float,
        provider_job_id: Optional[str] = None,
    ) -> str:
        """Append a submitted render to the ledger. Returns the entry id."""
        entry = RenderLedgerEntry(
            workspace_id=workspace_id,
            provider_id=provider_id,
            estimated_cost_usd=estimated_cost_usd,
            duration_seconds=duration_seconds,
            provider_job_id=provider_job_id,
            submitted_at=self.clock(),
        )
        self._ledger[entry.id] = entry
        logger.info(f"Recorded render: provider={provider_id} cost=${estimated_cost_usd:.2f} duration={duration_seconds}s")
        return entry.id

    def reserve(
        self,
        workspace_id: str,
        provider_id: str,
        estimated_cost_usd: float,
        duration_seconds: float,
    ) -> str:
        """
        Check the caps and record the submission with no await in between.

        Release the entry if the provider never accepts the render.

        Raises:
            BudgetExceeded: a cap would be exceeded
        """
        self.enforce(workspace_id, estimated_cost_usd)
        return self.record_submission(workspace_id, provider_id, estimated_cost_usd, duration_seconds)

    def attach_provider_job(self, entry_id: str, provider_job_id: str) -> None:
        entry = self._ledger.get(entry_id)
        if entry is not None:
            entry.provider_job_id = provider_job_id

    def release(self, entry_id: str) -> bool:
        """Drop a reservation the provider never accepted. Returns True if it existed."""
        entry = self._ledger.pop(entry_id, None)
        if entry is None:
            return False
        logger.info(f"Released render reservation: provider={entry.provider_id} cost=${entry.estimated_cost_usd:.2f}")
        return True

    def record_outcome(
        self,
        entry_id: str,
        status: LedgerStatus,
        actual_cost_usd: Optional[float] = None,
        error_message: Optional[str] = None,
    ) -> Optional[RenderLedgerEntry]:
        """Mark a ledger entry completed or failed."""
        entry = self._ledger.get(entry_id)
        if entry is None:
            return None
        entry.status = LedgerStatus(status)
        entry.actual_cost_usd = actual_cost_usd
        entry.error_message = error_message
        entry.completed_at = self.clock()
        return entry

    def entries(self, workspace_id: str) -> list[RenderLedgerEntry]:
        return [e for e in self._ledger.values() if e.workspace_id == workspace_id]
