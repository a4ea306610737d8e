"""
Video provider registry.

Single source of truth for video provider metadata. Every cost estimate and
eligibility filter reads from here. Adding a provider means adding one entry
to ``PROVIDER_REGISTRY``.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from types import MappingProxyType
from typing import Optional

from ..core.errors import UnknownProviderError

TEST_RENDER_MAX_SECONDS = 10


class ProviderCategory(str, Enum):
    CINEMATIC = "cinematic"
    AVATAR = "avatar"
    STOCK = "stock"
    MOTION = "motion"
    REALTIME = "realtime"


class ProviderStatus(str, Enum):
    ACTIVE = "active"
    COMING_SOON = "coming_soon"
    DEPRECATED = "deprecated"


@dataclass(frozen=True)
class VideoProviderMeta:
    """
    Static catalog entry for a video provider.

    Attributes:
        id: Registry id, e.g. "runway-gen4"
        credential_id: Provider id used for credential resolution, None when keyless
        cost_per_second: Estimated USD per rendered second
        min_duration_seconds: Shortest billable render
        max_duration_seconds: Longest supported render
        supports_test_render: Whether a short low-cost preview render exists
        test_render_cost_multiplier: Price factor applied to test renders
    """
    id: str
    name: str
    category: ProviderCategory
    cost_per_second: float
    min_duration_seconds: int
    max_duration_seconds: int
    resolutions: tuple[str, ...]
    supports_test_render: bool
    test_render_cost_multiplier: float
    status: ProviderStatus
    credential_id: Optional[str] = None
    api_key_env_var: Optional[str] = None
    quality_score: int = 0
    latency_score: int = 0
    best_for_channels: tuple[str, ...] = ()
    best_for_goals: tuple[str, ...] = ()
    tagline: str = ""
    learn_more_url: str = ""

    @property
    def requires_api_key(self) -> bool:
        return self.credential_id is not None

    def clamp_duration(self, seconds: float) -> float:
        return max(self.min_duration_seconds, min(self.max_duration_seconds, seconds))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "cost_per_second": self.cost_per_second,
            "min_duration_seconds": self.min_duration_seconds,
            "max_duration_seconds": self.max_duration_seconds,
            "resolutions": list(self.resolutions),
            "supports_test_render": self.supports_test_render,
            "test_render_cost_multiplier": self.test_render_cost_multiplier,
            "status": self.status.value,
            "requires_api_key": self.requires_api_key,
            "quality_score": self.quality_score,
            "latency_score": self.latency_score,
            "best_for_channels": list(self.best_for_channels),
            "best_for_goals": list(self.best_for_goals),
            "tagline": self.tagline,
            "learn_more_url": self.learn_more_url,
        }


_PROVIDERS = (
    VideoProviderMeta(
        id="runway-gen4",
        name="Runway Gen-4.5",
        category=ProviderCategory.CINEMATIC,
        cost_per_second=0.34,
        min_duration_seconds=4,
        max_duration_seconds=16,
        resolutions=("720p", "1080p"),
        supports_test_render=True,
        test_render_cost_multiplier=1.0,
        status=ProviderStatus.ACTIVE,
        credential_id="runway",
        api_key_env_var="RUNWAY_API_KEY",
        quality_score=92,
        latency_score=45,
        best_for_channels=("YOUTUBE", "LINKEDIN", "INSTAGRAM"),
        best_for_goals=("authority", "awareness"),
        tagline="Cinematic AI video, Hollywood quality",
        learn_more_url="https://runwayml.com",
    ),
    VideoProviderMeta(
        id="sora-2",
        name="Sora 2",
        category=ProviderCategory.CINEMATIC,
        cost_per_second=0.10,
        min_duration_seconds=4,
        max_duration_seconds=20,
        resolutions=("720p", "1080p", "4K"),
        supports_test_render=True,
        test_render_cost_multiplier=1.0,
        status=ProviderStatus.ACTIVE,
        credential_id="openai",
        api_key_env_var="OPENAI_API_KEY",
        quality_score=85,
        latency_score=60,
        best_for_channels=("YOUTUBE", "TIKTOK", "INSTAGRAM"),
        best_for_goals=("awareness", "conversion", "education"),
        tagline="OpenAI video generation, fast and versatile",
        learn_more_url="https://openai.com/sora",
    ),
    VideoProviderMeta(
        id="heygen-avatar",
        name="HeyGen Avatar",
        category=ProviderCategory.AVATAR,
        # 0.5 credits per 30s at $0.99 per credit
        cost_per_second=0.0165,
        min_duration_seconds=15,
        max_duration_seconds=300,
        resolutions=("720p", "1080p"),
        supports_test_render=False,
        test_render_cost_multiplier=1.0,
        status=ProviderStatus.COMING_SOON,
        credential_id="heygen",
        api_key_env_var="HEYGEN_API_KEY",
        quality_score=78,
        latency_score=55,
        best_for_channels=("LINKEDIN", "YOUTUBE"),
        best_for_goals=("education", "authority"),
        tagline="Presenter-led avatar videos",
        learn_more_url="https://www.heygen.com",
    ),
    VideoProviderMeta(
        id="template",
        name="Template (No Cost)",
        category=ProviderCategory.MOTION,
        cost_per_second=0.0,
        min_duration_seconds=4,
        max_duration_seconds=60,
        resolutions=("720p", "1080p"),
        supports_test_render=False,
        test_render_cost_multiplier=1.0,
        status=ProviderStatus.ACTIVE,
        quality_score=40,
        latency_score=100,
        best_for_channels=("LINKEDIN", "X"),
        best_for_goals=("education",),
        tagline="Storyboard frames from your script, instantly",
    ),
)

PROVIDER_REGISTRY = MappingProxyType({p.id: p for p in _PROVIDERS})


def get_provider(provider_id: str) -> VideoProviderMeta:
    """
    Look up a provider.

    Raises:
        UnknownProviderError: id is not in the registry
    """
    try:
        return PROVIDER_REGISTRY[provider_id]
    except KeyError:
        raise UnknownProviderError(f"Unknown video provider: {provider_id}") from None


def active_providers() -> list[VideoProviderMeta]:
    return [p for p in PROVIDER_REGISTRY.values() if p.status == ProviderStatus.ACTIVE]


def providers_by_category(category: ProviderCategory) -> list[VideoProviderMeta]:
    """Active providers in a category."""
    category = ProviderCategory(category)
    return [p for p in active_providers() if p.category == category]


def _cost_usd(*factors: float) -> float:
    """Multiply in decimal and round half up to the cent."""
    total = Decimal(1)
    for factor in factors:
        total *= Decimal(str(factor))
    return float(total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def estimate_cost(provider_id: str, duration_seconds: float) -> float:
    """
    Estimated USD cost of a render.

    Durations outside the provider's range are billed at the nearest bound.
    """
    provider = get_provider(provider_id)
    return _cost_usd(provider.cost_per_second, provider.clamp_duration(duration_seconds))


def estimate_test_render_cost(provider_id: str) -> float:
    """
    Estimated USD cost of a test render.

    Returns 0 when the provider has no test renders; 0 means "not
    applicable", not "free".
    """
    provider = get_provider(provider_id)
    if not provider.supports_test_render:
        return 0.0
    seconds = min(TEST_RENDER_MAX_SECONDS, provider.max_duration_seconds)
    return _cost_usd(provider.cost_per_second, seconds, provider.test_render_cost_multiplier)
