"""Tests for render adapters and render job orchestration."""
import asyncio

import httpx
import pytest
import pytest_asyncio

from conftest import json_body
from studio_integrations.core.errors import JobNotFound, ProviderError, TransientNetworkError
from studio_integrations.credentials import CredentialRecord
from studio_integrations.render import (
    MISSING_API_KEY,
    PollResult,
    RenderAdapter,
    RenderRequest,
    RenderService,
    RenderStatus,
    RunwayAdapter,
    SoraAdapter,
    SubmitResult,
    TemplateAdapter,
    parse_scenes,
)
from studio_integrations.render.adapters import default_adapters, runway_duration, sora_duration
from studio_integrations.video import LedgerStatus, RenderBudget, active_providers


class ScriptedAdapter(RenderAdapter):
    """Adapter whose poll results are queued up by the test."""

    provider_id = "runway-gen4"

    def __init__(self, submit_error=None):
        self.submit_error = submit_error
        self.polls: list = []
        self.submitted: list = []

    async def submit(self, request, api_key):
        if self.submit_error:
            raise self.submit_error
        self.submitted.append((request, api_key))
        return SubmitResult(provider_job_id="task-1")

    async def poll(self, provider_job_id, api_key):
        outcome = self.polls.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def budget(config):
    return RenderBudget(config=config)


def make_service(resolver, budget, config, adapter=None):
    adapters = {"template": TemplateAdapter(config)}
    if adapter is not None:
        adapters[adapter.provider_id] = adapter
    return RenderService(resolver, budget=budget, adapters=adapters, config=config)


class TestParseScenes:
    def test_scene_markers(self):
        script = "Scene 1: [Wide shot] Sunrise.\nScene 2: Coffee.\nScene 3: [Close up] Laptop opens."
        scenes = parse_scenes(script)
        assert scenes == [("Sunrise.", "Wide shot"), ("Coffee.", ""), ("Laptop opens.", "Close up")]

    def test_paragraphs(self):
        scenes = parse_scenes("One.\n\nTwo.\n\nThree.\n\nFour.")
        assert [text for text, _ in scenes] == ["One.", "Two.", "Three.", "Four."]

    def test_short_script_padded_to_three(self):
        assert len(parse_scenes("Just one line.")) == 3

    def test_capped_at_twelve(self):
        script = "\n\n".join(f"Paragraph {i}." for i in range(20))
        assert len(parse_scenes(script)) == 12

    def test_empty_script(self):
        assert parse_scenes("   ")[0][0] == "No script provided."


class TestTemplateAdapter:
    @pytest.mark.asyncio
    async def test_completes_on_submit(self, config):
        submitted = await TemplateAdapter(config).submit(RenderRequest("A.\n\nB.\n\nC.", 10), None)

        assert submitted.status == RenderStatus.COMPLETED
        assert submitted.preview_url == f"/studio/render/{submitted.provider_job_id}/storyboard"
        assert [f.scene_number for f in submitted.frames] == [1, 2, 3]
        assert len({f.background_color for f in submitted.frames}) == 3


class TestRunwayAdapter:
    def test_duration_snapping(self):
        assert [runway_duration(s) for s in (1, 4, 5, 6, 7, 16)] == [4, 4, 6, 6, 8, 8]

    @pytest.mark.asyncio
    async def test_submit(self, config, mock_http):
        client, transport = mock_http(lambda r: httpx.Response(200, json={"id": "task-9"}))
        adapter = RunwayAdapter(client=client, config=config)

        submitted = await adapter.submit(RenderRequest("p" * 1200, 10, aspect_ratio="9:16"), "rw-key")

        request = transport.requests[0]
        body = json_body(request)
        assert str(request.url) == "https://api.dev.runwayml.com/v1/text_to_video"
        assert request.headers["Authorization"] == "Bearer rw-key"
        assert request.headers["X-Runway-Version"] == config.runway_api_version
        assert len(body["promptText"]) == 1000
        assert body["ratio"] == "720:1280"
        assert body["duration"] == 8
        assert submitted.provider_job_id == "task-9"
        assert submitted.status == RenderStatus.QUEUED

    @pytest.mark.asyncio
    async def test_submit_error_is_classified(self, config, mock_http):
        client, _ = mock_http(lambda r: httpx.Response(401, text="bad key"))
        with pytest.raises(ProviderError) as exc_info:
            await RunwayAdapter(client=client, config=config).submit(RenderRequest("p", 5), "rw-key")
        assert exc_info.value.code == "TOKEN"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,status",
        [
            ({"status": "PENDING"}, RenderStatus.QUEUED),
            ({"status": "THROTTLED"}, RenderStatus.QUEUED),
            ({"status": "RUNNING", "progress": 0.5}, RenderStatus.PROCESSING),
            ({"status": "SUCCEEDED", "output": ["https://cdn/v.mp4"]}, RenderStatus.COMPLETED),
            ({"status": "FAILED", "failure": "content policy"}, RenderStatus.FAILED),
            ({"status": "CANCELLED"}, RenderStatus.FAILED),
        ],
    )
    async def test_poll_status_mapping(self, config, mock_http, payload, status):
        client, transport = mock_http(lambda r: httpx.Response(200, json=payload))
        polled = await RunwayAdapter(client=client, config=config).poll("task-9", "rw-key")

        assert transport.requests[0].url.path.endswith("/tasks/task-9")
        assert polled.status == status
        if status == RenderStatus.PROCESSING:
            assert polled.progress == 50
        if status == RenderStatus.COMPLETED:
            assert polled.output_url == "https://cdn/v.mp4"
        if status == RenderStatus.FAILED:
            assert polled.error_message


class TestSoraAdapter:
    def test_duration_snapping(self):
        assert [sora_duration(s, "sora-2") for s in (1, 5, 8, 20)] == [4, 8, 8, 12]
        assert [sora_duration(s, "sora-2-pro") for s in (4, 12, 20)] == [10, 15, 25]

    @pytest.mark.asyncio
    async def test_submit(self, config, mock_http):
        client, transport = mock_http(lambda r: httpx.Response(200, json={"id": "video_1", "status": "queued"}))

        submitted = await SoraAdapter(client=client, config=config).submit(
            RenderRequest("Harbor at dawn", 8, aspect_ratio="9:16"), "sk-key"
        )

        request = transport.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/videos"
        assert request.headers["Authorization"] == "Bearer sk-key"
        assert json_body(request) == {"model": "sora-2", "prompt": "Harbor at dawn", "size": "720x1280", "seconds": "8"}
        assert submitted.provider_job_id == "video_1"

    @pytest.mark.asyncio
    async def test_submit_without_id(self, config, mock_http):
        client, _ = mock_http(lambda r: httpx.Response(200, json={"status": "queued"}))
        with pytest.raises(ProviderError) as exc_info:
            await SoraAdapter(client=client, config=config).submit(RenderRequest("p", 8), "sk-key")
        assert exc_info.value.code == "EMPTY_RESPONSE"
        assert exc_info.value.provider_id == "openai"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,status",
        [
            ({"status": "queued"}, RenderStatus.QUEUED),
            ({"status": "in_progress", "progress": 40}, RenderStatus.PROCESSING),
            ({"status": "completed"}, RenderStatus.COMPLETED),
            ({"status": "failed", "error": {"message": "moderation"}}, RenderStatus.FAILED),
        ],
    )
    async def test_poll_status_mapping(self, config, mock_http, payload, status):
        client, transport = mock_http(lambda r: httpx.Response(200, json=payload))
        polled = await SoraAdapter(client=client, config=config).poll("video_1", "sk-key")

        assert transport.requests[0].url.path == "/v1/videos/video_1"
        assert polled.status == status
        if status == RenderStatus.PROCESSING:
            assert polled.progress == 40
        if status == RenderStatus.COMPLETED:
            assert polled.output_url == "https://api.openai.com/v1/videos/video_1/content"
        if status == RenderStatus.FAILED:
            assert polled.error_message == "moderation"


class TestMalformedProviderResponses:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("adapter_cls", [RunwayAdapter, SoraAdapter])
    @pytest.mark.parametrize("body", [dict(text="<html></html>"), dict(json=["task-9"])])
    async def test_unreadable_body_is_provider_error(self, config, mock_http, adapter_cls, body):
        client, _ = mock_http(lambda r: httpx.Response(200, **body))
        adapter = adapter_cls(client=client, config=config)

        with pytest.raises(ProviderError) as exc_info:
            await adapter.submit(RenderRequest("p", 8), "key")
        assert exc_info.value.code == "INVALID_RESPONSE"
        with pytest.raises(ProviderError):
            await adapter.poll("task-9", "key")

    @pytest.mark.asyncio
    async def test_unreadable_poll_fails_job(self, store, resolver, budget, config, mock_http):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"id": "task-9"})
            return httpx.Response(200, text="upstream proxy error")

        await store.put("runway", "ws_1", CredentialRecord.byok("rw-key"))
        client, _ = mock_http(handler)
        service = make_service(resolver, budget, config, RunwayAdapter(client=client, config=config))

        job = await service.create_job("ws_1", "runway-gen4", RenderRequest("Harbor", 8))
        polled = await service.poll_job(job.job_id)

        assert polled.status == RenderStatus.FAILED
        assert polled.error_code == "INVALID_RESPONSE"


def test_every_active_provider_has_an_adapter(config):
    assert {p.id for p in active_providers()} <= set(default_adapters(config))


class TestCreateJob:
    @pytest.mark.asyncio
    async def test_missing_key_awaits_provider(self, resolver, budget, config):
        service = make_service(resolver, budget, config, ScriptedAdapter())

        job = await service.create_job("ws_1", "runway-gen4", RenderRequest("Harbor", 8))

        assert job.status == RenderStatus.AWAITING_PROVIDER
        assert job.error_code == MISSING_API_KEY
        assert job.next_action.action == "connect_provider"
        assert budget.entries("ws_1") == []

    @pytest.mark.asyncio
    async def test_submits_with_workspace_key(self, store, resolver, budget, config):
        await store.put("runway", "ws_1", CredentialRecord.byok("rw-key"))
        adapter = ScriptedAdapter()
        service = make_service(resolver, budget, config, adapter)

        job = await service.create_job("ws_1", "runway-gen4", RenderRequest("Harbor", 30))

        assert job.status == RenderStatus.QUEUED
        assert job.duration_seconds == 16
        assert adapter.submitted[0][1] == "rw-key"
        entry = budget.entries("ws_1")[0]
        assert entry.estimated_cost_usd == 5.44
        assert entry.provider_job_id == "task-1"

    @pytest.mark.asyncio
    async def test_budget_exceeded(self, store, resolver, budget, config):
        await store.put("runway", "ws_1", CredentialRecord.byok("rw-key"))
        budget.set_limits("ws_1", monthly_usd=1.0)
        adapter = ScriptedAdapter()
        service = make_service(resolver, budget, config, adapter)

        job = await service.create_job("ws_1", "runway-gen4", RenderRequest("Harbor", 8))

        assert job.status == RenderStatus.BUDGET_EXCEEDED
        assert job.next_action.action == "upgrade"
        assert adapter.submitted == []

    @pytest.mark.asyncio
    async def test_concurrent_jobs_respect_monthly_cap(self, store, resolver, budget, config):
        class SlowAdapter(ScriptedAdapter):
            async def submit(self, request, api_key):
                await asyncio.sleep(0.01)
                return await super().submit(request, api_key)

        await store.put("runway", "ws_1", CredentialRecord.byok("rw-key"))
        budget.set_limits("ws_1", monthly_usd=3.0)
        service = make_service(resolver, budget, config, SlowAdapter())

        jobs = await asyncio.gather(*(
            service.create_job("ws_1", "runway-gen4", RenderRequest("Harbor", 8)) for _ in range(3)
        ))

        statuses = sorted(job.status.value for job in jobs)
        assert statuses == ["budget_exceeded", "budget_exceeded", "queued"]
        assert sum(e.estimated_cost_usd for e in budget.entries("ws_1")) == 2.72

    @pytest.mark.asyncio
    async def test_submit_failure_preserves_code(self, store, resolver, budget, config):
        await store.put("runway", "ws_1", CredentialRecord.byok("rw-key"))
        adapter = ScriptedAdapter(ProviderError("Runway rejected the payload", status=400, code="PAYLOAD"))
        service = make_service(resolver, budget, config, adapter)

        job = await service.create_job("ws_1", "runway-gen4", RenderRequest("Harbor", 8))

        assert job.status == RenderStatus.FAILED
        assert job.error_code == "PAYLOAD"
        assert job.next_action.action == "retry"
        assert budget.entries("ws_1") == []

    @pytest.mark.asyncio
    async def test_template_completes_without_key(self, resolver, budget, config):
        service = make_service(resolver, budget, config)

        job = await service.create_job("ws_1", "template", RenderRequest("A.\n\nB.\n\nC.", 20))

        assert job.status == RenderStatus.COMPLETED
        assert job.preview_url
        assert len(job.frames) == 3
        assert budget.entries("ws_1")[0].status == LedgerStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_provider_without_adapter_fails(self, store, resolver, budget, config):
        await store.put("openai", "ws_1", CredentialRecord.byok("sk"))
        service = make_service(resolver, budget, config)

        job = await service.create_job("ws_1", "sora-2", RenderRequest("Harbor", 8))

        assert job.status == RenderStatus.FAILED
        assert job.error_code == "PROVIDER_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_test_render_uses_short_duration(self, store, resolver, budget, config):
        await store.put("runway", "ws_1", CredentialRecord.byok("rw-key"))
        adapter = ScriptedAdapter()
        service = make_service(resolver, budget, config, adapter)

        await service.create_job("ws_1", "runway-gen4", RenderRequest("Harbor", 16), test_render=True)

        assert adapter.submitted[0][0].duration_seconds == 10
        assert budget.entries("ws_1")[0].estimated_cost_usd == 3.40

    @pytest.mark.asyncio
    async def test_test_render_unsupported(self, resolver, budget, config):
        service = make_service(resolver, budget, config)
        job = await service.create_job("ws_1", "template", RenderRequest("Hi", 8), test_render=True)
        assert job.error_code == "TEST_RENDER_UNSUPPORTED"


class TestPollJob:
    @pytest_asyncio.fixture
    async def running(self, store, resolver, budget, config):
        await store.put("runway", "ws_1", CredentialRecord.byok("rw-key"))
        adapter = ScriptedAdapter()
        service = make_service(resolver, budget, config, adapter)
        job = await service.create_job("ws_1", "runway-gen4", RenderRequest("Harbor", 8))
        return service, adapter, job

    @pytest.mark.asyncio
    async def test_progress_then_completion(self, running, budget):
        service, adapter, job = running
        adapter.polls = [
            PollResult(RenderStatus.PROCESSING, progress=30),
            PollResult(RenderStatus.COMPLETED, output_url="https://cdn/v.mp4", thumbnail_url="https://cdn/t.jpg"),
        ]

        first = await service.poll_job(job.job_id)
        second = await service.poll_job(job.job_id)

        assert first.status == RenderStatus.PROCESSING
        assert first.progress == 30
        assert second.status == RenderStatus.COMPLETED
        assert second.progress is None
        assert second.output_url == "https://cdn/v.mp4"
        assert budget.entries("ws_1")[0].status == LedgerStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_terminal_job_is_not_polled_again(self, running):
        service, adapter, job = running
        adapter.polls = [PollResult(RenderStatus.FAILED, error_message="content policy")]

        failed = await service.poll_job(job.job_id)
        again = await service.poll_job(job.job_id)

        assert failed.status == RenderStatus.FAILED
        assert failed.error == "content policy"
        assert again == failed

    @pytest.mark.asyncio
    async def test_completed_without_output_fails(self, running):
        service, adapter, job = running
        adapter.polls = [PollResult(RenderStatus.COMPLETED)]

        result = await service.poll_job(job.job_id)
        assert result.status == RenderStatus.FAILED
        assert result.error_code == "EMPTY_OUTPUT"

    @pytest.mark.asyncio
    async def test_transient_poll_error_leaves_job(self, running):
        service, adapter, job = running
        adapter.polls = [TransientNetworkError("timed out", code="TIMEOUT")]

        result = await service.poll_job(job.job_id)
        assert result.status == RenderStatus.QUEUED

    @pytest.mark.asyncio
    async def test_provider_poll_error_fails_job(self, running, budget):
        service, adapter, job = running
        adapter.polls = [ProviderError("server error", status=500, code="UPSTREAM")]

        result = await service.poll_job(job.job_id)
        assert result.status == RenderStatus.FAILED
        assert result.error_code == "UPSTREAM"
        assert budget.entries("ws_1")[0].status == LedgerStatus.FAILED

    @pytest.mark.asyncio
    async def test_unknown_job(self, resolver, budget, config):
        service = make_service(resolver, budget, config)
        with pytest.raises(JobNotFound):
            await service.poll_job("nope")
        with pytest.raises(JobNotFound):
            service.get_job("nope")
