"""Render jobs: status contract, provider adapters and orchestration."""
from .adapters import (
    PollResult,
    RenderAdapter,
    RenderRequest,
    RunwayAdapter,
    SoraAdapter,
    SubmitResult,
    TemplateAdapter,
    parse_scenes,
)
from .models import (
    ALLOWED_TRANSITIONS,
    MISSING_API_KEY,
    TERMINAL_STATUSES,
    NextAction,
    RenderResult,
    RenderStatus,
    StoryboardFrame,
    can_transition,
)
from .service import RenderService

__all__ = [
    "ALLOWED_TRANSITIONS",
    "MISSING_API_KEY",
    "TERMINAL_STATUSES",
    "NextAction",
    "PollResult",
    "RenderAdapter",
    "RenderRequest",
    "RenderResult",
    "RenderService",
    "RenderStatus",
    "RunwayAdapter",
    "SoraAdapter",
    "StoryboardFrame",
    "SubmitResult",
    "TemplateAdapter",
    "can_transition",
    "parse_scenes",
]
