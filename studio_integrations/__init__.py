"""Studio Integrations: credential resolution, platform connectors and render orchestration."""
__version__ = "0.1.0"
