"""Connector configuration."""

from ncf_connector.config.settings import ConnectorSettings, get_settings, reset_settings

__all__ = ["ConnectorSettings", "get_settings", "reset_settings"]
