"""
Video render adapters.

Each adapter wraps one provider's submit/poll API and reports progress in
terms of ``RenderStatus``. Adapters never build ``RenderResult`` themselves;
``RenderService`` owns the state machine.
"""
import logging
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import httpx

from ..core.config import Settings, settings as default_settings
from ..core.errors import ProviderError, json_object, provider_error_from_response, transient_from_httpx
from .models import RenderStatus, StoryboardFrame

logger = logging.getLogger(__name__)


@dataclass
class RenderRequest:
    prompt: str
    duration_seconds: float
    aspect_ratio: str = "16:9"
    model: Optional[str] = None


@dataclass
class SubmitResult:
    provider_job_id: str
    status: RenderStatus = RenderStatus.QUEUED
    preview_url: Optional[str] = None
    frames: list[StoryboardFrame] = field(default_factory=list)


@dataclass
class PollResult:
    status: RenderStatus
    progress: Optional[int] = None
    output_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error_message: Optional[str] = None


class RenderAdapter(ABC):
    """Submit and poll renders for one registry provider."""

    provider_id: str = "base"

    @abstractmethod
    async def submit(self, request: RenderRequest, api_key: Optional[str]) -> SubmitResult:
        """
        Start a render.

        Raises:
            ProviderError: the provider rejected the request
            TransientNetworkError: timeout or connection failure
        """

    @abstractmethod
    async def poll(self, provider_job_id: str, api_key: Optional[str]) -> PollResult:
        """Fetch the provider's current status for a render."""

    async def close(self) -> None:
        pass


class HttpRenderAdapter(RenderAdapter):
    """Shared HTTP plumbing for keyed render APIs."""

    display_name: str = "Render provider"
    api_base_setting: str = ""
    # Provider id on raised errors, matching the credential the key came from
    error_provider_id: str = "base"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, config: Optional[Settings] = None):
        self.config = config or default_settings
        self._client = client

    @property
    def api_base(self) -> str:
        return getattr(self.config, self.api_base_setting)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.http_timeout_seconds)
        return self._client

    def _headers(self, api_key: Optional[str]) -> dict[str, str]:
        if not api_key:
            raise ProviderError(
                f"{self.display_name} API key is required",
                code="MISSING_API_KEY",
                provider_id=self.error_provider_id,
            )
        return {"Authorization": f"Bearer {api_key}"}

    async def _send(self, method: str, path: str, api_key: Optional[str], **kwargs) -> dict:
        headers = self._headers(api_key)
        client = await self._get_client()
        try:
            response = await client.request(method, f"{self.api_base}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise transient_from_httpx(e, self.display_name) from e
        if response.status_code >= 400:
            logger.error(f"{self.display_name} {method} {path} failed: {response.status_code} {response.text[:200]}")
            error = provider_error_from_response(response, self.display_name)
            error.provider_id = self.error_provider_id
            raise error
        return json_object(response, self.display_name, provider_id=self.error_provider_id)

    def _job_id(self, value) -> str:
        if not value or not isinstance(value, (str, int)):
            raise ProviderError(
                f"{self.display_name} returned no job id",
                code="EMPTY_RESPONSE",
                provider_id=self.error_provider_id,
            )
        return str(value)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


def _progress(value) -> Optional[int]:
    """Percentage from a 0-1 fraction or a 0-100 number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and value <= 1:
        value = value * 100
    return max(0, min(100, round(value)))


def _text(value) -> Optional[str]:
    return value if isinstance(value, str) and value else None


# Runway accepts these resolutions for text_to_video
RUNWAY_RATIOS = {
    "16:9": "1280:720",
    "9:16": "720:1280",
    "1:1": "1080:1080",
    "1280:720": "1280:720",
    "720:1280": "720:1280",
    "1080:1080": "1080:1080",
}
RUNWAY_MAX_PROMPT_LENGTH = 1000


def runway_duration(seconds: float) -> int:
    """Snap to the durations the text_to_video endpoint accepts: 4, 6 or 8."""
    if seconds <= 4:
        return 4
    if seconds <= 6:
        return 6
    return 8


class RunwayAdapter(HttpRenderAdapter):
    """
    Runway text-to-video.

    Usage:
        adapter = RunwayAdapter()
        submitted = await adapter.submit(RenderRequest("A drone shot of a harbor", 8), api_key)
        status = await adapter.poll(submitted.provider_job_id, api_key)
    """

    provider_id = "runway-gen4"
    display_name = "Runway"
    api_base_setting = "runway_api_base"
    error_provider_id = "runway"

    def _headers(self, api_key: Optional[str]) -> dict[str, str]:
        headers = super()._headers(api_key)
        headers["X-Runway-Version"] = self.config.runway_api_version
        return headers

    async def submit(self, request: RenderRequest, api_key: Optional[str]) -> SubmitResult:
        prompt = request.prompt
        if len(prompt) > RUNWAY_MAX_PROMPT_LENGTH:
            logger.warning(f"Truncating Runway prompt from {len(prompt)} to {RUNWAY_MAX_PROMPT_LENGTH} chars")
            prompt = prompt[:RUNWAY_MAX_PROMPT_LENGTH]

        ratio = RUNWAY_RATIOS.get(request.aspect_ratio)
        if ratio is None:
            logger.warning(f"Unknown aspect ratio {request.aspect_ratio!r}, using 1280:720")
            ratio = "1280:720"

        data = await self._send(
            "POST",
            "/text_to_video",
            api_key,
            json={
                "model": request.model or self.config.runway_model,
                "promptText": prompt,
                "ratio": ratio,
                "duration": runway_duration(request.duration_seconds),
            },
        )
        task_id = self._job_id(data.get("id") or data.get("taskId"))
        logger.info(f"Runway task submitted: {task_id}")
        return SubmitResult(provider_job_id=task_id)

    async def poll(self, provider_job_id: str, api_key: Optional[str]) -> PollResult:
        data = await self._send("GET", f"/tasks/{provider_job_id}", api_key)
        runway_status = _text(data.get("status")) or ""

        if runway_status in ("PENDING", "THROTTLED"):
            return PollResult(status=RenderStatus.QUEUED)
        if runway_status == "SUCCEEDED":
            output = data.get("output")
            output_url = output[0] if isinstance(output, list) and output else output
            return PollResult(
                status=RenderStatus.COMPLETED,
                output_url=_text(output_url),
                thumbnail_url=_text(data.get("thumbnail")),
            )
        if runway_status in ("FAILED", "CANCELLED"):
            return PollResult(
                status=RenderStatus.FAILED,
                error_message=(
                    _text(data.get("error"))
                    or _text(data.get("failure"))
                    or f"Runway task {runway_status.lower()}"
                ),
            )
        # RUNNING and anything unrecognised
        return PollResult(status=RenderStatus.PROCESSING, progress=_progress(data.get("progress")))


# Sora accepts these sizes
SORA_SIZES = {
    "16:9": "1280x720",
    "9:16": "720x1280",
    "1:1": "1024x1024",
    "21:9": "1792x1024",
    "9:21": "1024x1792",
    "1280x720": "1280x720",
    "720x1280": "720x1280",
    "1792x1024": "1792x1024",
    "1024x1792": "1024x1792",
    "1024x1024": "1024x1024",
}
SORA_MAX_PROMPT_LENGTH = 5000


def sora_duration(seconds: float, model: str) -> int:
    """Snap to the clip lengths a Sora model accepts."""
    if model == "sora-2-pro":
        if seconds <= 10:
            return 10
        if seconds <= 15:
            return 15
        return 25
    if seconds <= 4:
        return 4
    if seconds <= 8:
        return 8
    return 12


class SoraAdapter(HttpRenderAdapter):
    """
    OpenAI Sora video generation.

    The finished video is served from the authenticated ``/videos/{id}/content``
    endpoint, which becomes the job's output URL.
    """

    provider_id = "sora-2"
    display_name = "Sora"
    api_base_setting = "sora_api_base"
    error_provider_id = "openai"

    async def submit(self, request: RenderRequest, api_key: Optional[str]) -> SubmitResult:
        model = request.model or self.config.sora_model
        size = SORA_SIZES.get(request.aspect_ratio)
        if size is None:
            logger.warning(f"Unknown aspect ratio {request.aspect_ratio!r}, using 1280x720")
            size = "1280x720"
        seconds = sora_duration(request.duration_seconds, model)

        data = await self._send(
            "POST",
            "/videos",
            api_key,
            json={
                "model": model,
                "prompt": request.prompt[:SORA_MAX_PROMPT_LENGTH],
                "size": size,
                "seconds": str(seconds),
            },
        )
        video_id = self._job_id(data.get("id"))
        logger.info(f"Sora video submitted: {video_id} ({model}, {size}, {seconds}s)")
        return SubmitResult(provider_job_id=video_id)

    async def poll(self, provider_job_id: str, api_key: Optional[str]) -> PollResult:
        data = await self._send("GET", f"/videos/{provider_job_id}", api_key)
        sora_status = _text(data.get("status")) or ""

        if sora_status == "queued":
            return PollResult(status=RenderStatus.QUEUED)
        if sora_status == "completed":
            return PollResult(
                status=RenderStatus.COMPLETED,
                progress=100,
                output_url=f"{self.api_base}/videos/{provider_job_id}/content",
            )
        if sora_status == "failed":
            error = data.get("error")
            message = _text(error.get("message")) if isinstance(error, dict) else None
            return PollResult(status=RenderStatus.FAILED, error_message=message or "Sora generation failed")
        # in_progress and anything unrecognised
        return PollResult(status=RenderStatus.PROCESSING, progress=_progress(data.get("progress")))


MIN_SCENES = 3
MAX_SCENES = 12
WORDS_PER_SCENE = 50

SCENE_COLORS = (
    "#1e293b",
    "#312e81",
    "#1e1b4b",
    "#172554",
    "#0c4a6e",
    "#134e4a",
    "#3f3f46",
    "#581c87",
    "#7c2d12",
    "#991b1b",
    "#065f46",
    "#713f12",
)

_DIRECTION = re.compile(r"^\s*\[([^\]]+)\]\s*")
_SCENE_MARKER = re.compile(
    r"(?:^|\n)\s*scene\s*(?:\d+|one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve)\s*[:.\-—]",
    re.IGNORECASE,
)
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


def _split_direction(text: str) -> tuple[str, str]:
    """Pull a leading ``[camera direction]`` off a scene."""
    match = _DIRECTION.match(text)
    if match:
        return match.group(1).strip(), text[match.end():].strip()
    return "", text.strip()


def _scene(raw: str) -> tuple[str, str]:
    direction, clean = _split_direction(raw)
    return clean or raw, direction


def parse_scenes(script: str) -> list[tuple[str, str]]:
    """
    Split a script into (text, direction) scenes.

    Tries explicit "Scene N:" markers, then paragraphs, then groups of
    sentences. Always returns between 3 and 12 scenes.
    """
    script = script.strip()
    if not script:
        return [("No script provided.", "Opening")] + [("...", "")] * (MIN_SCENES - 1)

    markers = list(_SCENE_MARKER.finditer(script))
    if len(markers) >= 2:
        scenes = []
        for i, marker in enumerate(markers):
            end = markers[i + 1].start() if i + 1 < len(markers) else len(script)
            raw = script[marker.end():end].strip()
            if raw:
                scenes.append(_scene(raw))
        if len(scenes) >= MIN_SCENES:
            return scenes[:MAX_SCENES]

    paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(script) if p.strip()]
    if len(paragraphs) >= MIN_SCENES:
        return [_scene(p) for p in paragraphs[:MAX_SCENES]]

    scenes = []
    current: list[str] = []
    word_count = 0
    for sentence in filter(None, _SENTENCE_BREAK.split(script)):
        current.append(sentence)
        word_count += len(sentence.split())
        if word_count >= WORDS_PER_SCENE or len(current) >= 3:
            scenes.append(_scene(" ".join(current)))
            current, word_count = [], 0
    if current:
        scenes.append(_scene(" ".join(current)))

    while len(scenes) < MIN_SCENES:
        scenes.append(("...", ""))
    return scenes[:MAX_SCENES]


def build_frames(scenes: list[tuple[str, str]]) -> list[StoryboardFrame]:
    return [
        StoryboardFrame(
            scene_number=i + 1,
            text=text,
            direction=direction or f"Scene {i + 1}",
            background_color=SCENE_COLORS[i % len(SCENE_COLORS)],
        )
        for i, (text, direction) in enumerate(scenes)
    ]


class TemplateAdapter(RenderAdapter):
    """Zero-cost storyboard renderer. No API key, no network, completes on submit."""

    provider_id = "template"

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    async def submit(self, request: RenderRequest, api_key: Optional[str]) -> SubmitResult:
        job_id = f"template-{uuid.uuid4().hex[:12]}"
        frames = build_frames(parse_scenes(request.prompt))
        logger.info(f"Template storyboard {job_id}: {len(frames)} scenes")
        return SubmitResult(
            provider_job_id=job_id,
            status=RenderStatus.COMPLETED,
            preview_url=self.config.template_preview_url.format(job_id=job_id),
            frames=frames,
        )

    async def poll(self, provider_job_id: str, api_key: Optional[str]) -> PollResult:
        return PollResult(
            status=RenderStatus.COMPLETED,
            output_url=self.config.template_preview_url.format(job_id=provider_job_id),
        )


def default_adapters(config: Optional[Settings] = None) -> dict[str, RenderAdapter]:
    adapters = (RunwayAdapter(config=config), SoraAdapter(config=config), TemplateAdapter(config=config))
    return {adapter.provider_id: adapter for adapter in adapters}
