"""Video provider catalog, cost model and render budget."""
from .budget import BudgetCheckResult, BudgetLimits, LedgerStatus, RenderBudget, RenderLedgerEntry
from .registry import (
    PROVIDER_REGISTRY,
    ProviderCategory,
    ProviderStatus,
    VideoProviderMeta,
    active_providers,
    estimate_cost,
    estimate_test_render_cost,
    get_provider,
    providers_by_category,
)

__all__ = [
    "BudgetCheckResult",
    "BudgetLimits",
    "LedgerStatus",
    "RenderBudget",
    "RenderLedgerEntry",
    "PROVIDER_REGISTRY",
    "ProviderCategory",
    "ProviderStatus",
    "VideoProviderMeta",
    "active_providers",
    "estimate_cost",
    "estimate_test_render_cost",
    "get_provider",
    "providers_by_category",
]
