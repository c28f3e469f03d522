"""
FastAPI dependency for injecting application settings.

Routes and service factories depend on ``get_app_settings`` rather than calling
``get_settings`` directly so tests can swap configuration per app instance.
"""

from app.core.config import AppSettings, get_settings


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning the process-wide settings."""
    return get_settings()


__all__ = ["get_app_settings"]
