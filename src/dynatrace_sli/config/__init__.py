"""Configuration for the Dynatrace SLI bridge."""

from dynatrace_sli.config.settings import DynatraceConfig, Settings, get_settings

__all__ = ["DynatraceConfig", "Settings", "get_settings"]
