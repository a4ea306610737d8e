"""
Render job status contract.

Every video adapter produces ``RenderResult``; polling and the UI consume it.

Transitions:
    queued     -> processing | completed | failed | awaiting_provider | budget_exceeded
    processing -> processing | completed | failed

completed, failed, awaiting_provider and budget_exceeded are terminal. A retry
is a new job, never a status flip on the same job id.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.errors import InvalidTransition

MISSING_API_KEY = "MISSING_API_KEY"
INTEGRATIONS_HREF = "/studio/settings/integrations"


class RenderStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    AWAITING_PROVIDER = "awaiting_provider"
    BUDGET_EXCEEDED = "budget_exceeded"


ALLOWED_TRANSITIONS = MappingProxyType({
    RenderStatus.QUEUED: frozenset({
        RenderStatus.PROCESSING,
        RenderStatus.COMPLETED,
        RenderStatus.FAILED,
        RenderStatus.AWAITING_PROVIDER,
        RenderStatus.BUDGET_EXCEEDED,
    }),
    RenderStatus.PROCESSING: frozenset({
        RenderStatus.PROCESSING,
        RenderStatus.COMPLETED,
        RenderStatus.FAILED,
    }),
})

TERMINAL_STATUSES = frozenset(set(RenderStatus) - set(ALLOWED_TRANSITIONS))


def can_transition(current: RenderStatus, new: RenderStatus) -> bool:
    return RenderStatus(new) in ALLOWED_TRANSITIONS.get(RenderStatus(current), frozenset())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StoryboardFrame(BaseModel):
    """One storyboard card produced from the script."""
    model_config = ConfigDict(frozen=True)

    scene_number: int
    text: str
    direction: str
    background_color: str


class NextAction(BaseModel):
    """What the user should do next, so the UI needs no provider knowledge."""
    model_config = ConfigDict(frozen=True)

    label: str
    href: Optional[str] = None
    action: Optional[str] = None

    @classmethod
    def connect_provider(cls, provider_name: str) -> "NextAction":
        return cls(label=f"Connect {provider_name} API Key", href=INTEGRATIONS_HREF, action="connect_provider")

    @classmethod
    def retry(cls) -> "NextAction":
        return cls(label="Try again", action="retry")

    @classmethod
    def upgrade(cls) -> "NextAction":
        return cls(label="Review render budget", href="/studio/settings/billing", action="upgrade")


class RenderResult(BaseModel):
    """
    One video-generation attempt. Immutable; ``transition`` returns a new value.

    Construction fails (pydantic ``ValidationError``) when:
        - status is completed without a preview or output URL
        - status is failed without an error message
        - progress is set outside processing
        - next_action is missing for awaiting_provider, or for a failure
          caused by a missing API key
    """
    model_config = ConfigDict(frozen=True)

    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    provider_id: str
    status: RenderStatus = RenderStatus.QUEUED

    preview_url: Optional[str] = None
    output_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    frames: Optional[list[StoryboardFrame]] = None

    progress: Optional[int] = Field(default=None, ge=0, le=100)
    estimated_seconds: Optional[int] = None

    error: Optional[str] = None
    error_code: Optional[str] = None
    next_action: Optional[NextAction] = None

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    duration_seconds: Optional[float] = None

    @model_validator(mode="after")
    def _check_status_invariants(self) -> "RenderResult":
        if self.status == RenderStatus.COMPLETED and not (self.preview_url or self.output_url):
            raise ValueError("completed render needs a preview_url or output_url")
        if self.status == RenderStatus.FAILED and not self.error:
            raise ValueError("failed render needs an error message")
        if self.progress is not None and self.status != RenderStatus.PROCESSING:
            raise ValueError("progress is only set while processing")
        needs_action = self.status == RenderStatus.AWAITING_PROVIDER or (
            self.status == RenderStatus.FAILED and self.error_code == MISSING_API_KEY
        )
        if needs_action and self.next_action is None:
            raise ValueError(f"{self.status.value} render needs a next_action")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, status: RenderStatus, **changes: Any) -> "RenderResult":
        """
        Move to a new status, revalidating the result.

        Progress is cleared on leaving processing unless given explicitly.

        Raises:
            InvalidTransition: the current status does not allow ``status``
        """
        status = RenderStatus(status)
        if not can_transition(self.status, status):
            raise InvalidTransition(f"Render job {self.job_id} cannot move from {self.status.value} to {status.value}")

        data = self.model_dump()
        if status != RenderStatus.PROCESSING:
            data["progress"] = None
        data.update(changes)
        data["status"] = status
        data["updated_at"] = _now()
        return RenderResult.model_validate(data)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
