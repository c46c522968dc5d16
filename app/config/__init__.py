"""Environment-driven settings for the audit service."""

from app.config.settings import Config, get_config, load_config, reset_config

__all__ = ["Config", "get_config", "load_config", "reset_config"]
