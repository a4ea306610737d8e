"""Core modules for Studio Integrations."""
from .config import Settings, settings
from .errors import (
    BudgetExceeded,
    ErrorType,
    IntegrationError,
    InvalidTransition,
    JobNotFound,
    NotConfigured,
    ProviderError,
    TransientNetworkError,
    UnknownProviderError,
    ValidationError,
)
from .rate_limiter import KeyedRateLimiter, RateLimiter

__all__ = [
    "Settings",
    "settings",
    "BudgetExceeded",
    "ErrorType",
    "IntegrationError",
    "InvalidTransition",
    "JobNotFound",
    "NotConfigured",
    "ProviderError",
    "TransientNetworkError",
    "UnknownProviderError",
    "ValidationError",
    "KeyedRateLimiter",
    "RateLimiter",
]
