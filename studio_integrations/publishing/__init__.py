"""Publishing orchestration across platform connectors."""
from .service import PublishingService

__all__ = ["PublishingService"]
