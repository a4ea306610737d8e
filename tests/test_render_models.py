"""Tests for the render job status contract."""
import pydantic
import pytest

from studio_integrations.core.errors import InvalidTransition
from studio_integrations.render import (
    MISSING_API_KEY,
    TERMINAL_STATUSES,
    NextAction,
    RenderResult,
    RenderStatus,
    can_transition,
)


class TestTransitions:
    @pytest.mark.parametrize(
        "current,new",
        [
            ("queued", "processing"),
            ("queued", "completed"),
            ("queued", "failed"),
            ("queued", "awaiting_provider"),
            ("queued", "budget_exceeded"),
            ("processing", "processing"),
            ("processing", "completed"),
            ("processing", "failed"),
        ],
    )
    def test_allowed(self, current, new):
        assert can_transition(current, new)

    @pytest.mark.parametrize(
        "current,new",
        [
            ("processing", "queued"),
            ("processing", "awaiting_provider"),
            ("completed", "processing"),
            ("failed", "queued"),
            ("awaiting_provider", "queued"),
            ("budget_exceeded", "processing"),
        ],
    )
    def test_forbidden(self, current, new):
        assert not can_transition(current, new)

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {
            RenderStatus.COMPLETED,
            RenderStatus.FAILED,
            RenderStatus.AWAITING_PROVIDER,
            RenderStatus.BUDGET_EXCEEDED,
        }


class TestRenderResult:
    def test_new_job_is_queued(self):
        job = RenderResult(provider_id="runway-gen4")
        assert job.status == RenderStatus.QUEUED
        assert job.job_id

    def test_completed_requires_url(self):
        with pytest.raises(pydantic.ValidationError):
            RenderResult(provider_id="runway-gen4", status=RenderStatus.COMPLETED)

    def test_completed_with_output_url(self):
        job = RenderResult(provider_id="runway-gen4", status="completed", output_url="https://cdn/v.mp4")
        assert job.is_terminal

    def test_failed_requires_error(self):
        with pytest.raises(pydantic.ValidationError):
            RenderResult(provider_id="runway-gen4", status=RenderStatus.FAILED)

    def test_progress_only_while_processing(self):
        with pytest.raises(pydantic.ValidationError):
            RenderResult(provider_id="runway-gen4", progress=10)
        assert RenderResult(provider_id="runway-gen4", status="processing", progress=10).progress == 10

    def test_progress_bounds(self):
        with pytest.raises(pydantic.ValidationError):
            RenderResult(provider_id="runway-gen4", status="processing", progress=101)

    def test_awaiting_provider_requires_next_action(self):
        with pytest.raises(pydantic.ValidationError):
            RenderResult(provider_id="runway-gen4", status=RenderStatus.AWAITING_PROVIDER)

    def test_missing_key_failure_requires_next_action(self):
        with pytest.raises(pydantic.ValidationError):
            RenderResult(provider_id="runway-gen4", status="failed", error="no key", error_code=MISSING_API_KEY)

        job = RenderResult(
            provider_id="runway-gen4",
            status="failed",
            error="no key",
            error_code=MISSING_API_KEY,
            next_action=NextAction.connect_provider("Runway Gen-4.5"),
        )
        assert job.next_action.label == "Connect Runway Gen-4.5 API Key"
        assert job.next_action.href == "/studio/settings/integrations"

    def test_is_immutable(self):
        job = RenderResult(provider_id="runway-gen4")
        with pytest.raises(pydantic.ValidationError):
            job.status = RenderStatus.PROCESSING


class TestTransition:
    def test_processing_then_completed_clears_progress(self):
        job = RenderResult(provider_id="runway-gen4")
        processing = job.transition(RenderStatus.PROCESSING, progress=40)
        done = processing.transition(RenderStatus.COMPLETED, output_url="https://cdn/v.mp4")

        assert processing.progress == 40
        assert done.progress is None
        assert done.job_id == job.job_id
        assert job.status == RenderStatus.QUEUED

    def test_invalid_transition(self):
        done = RenderResult(provider_id="template", status="completed", preview_url="/p")
        with pytest.raises(InvalidTransition):
            done.transition(RenderStatus.PROCESSING)

    def test_transition_is_revalidated(self):
        job = RenderResult(provider_id="runway-gen4")
        with pytest.raises(pydantic.ValidationError):
            job.transition(RenderStatus.COMPLETED)

    def test_to_dict_uses_strings(self):
        data = RenderResult(provider_id="runway-gen4").to_dict()
        assert data["status"] == "queued"
        assert isinstance(data["created_at"], str)
