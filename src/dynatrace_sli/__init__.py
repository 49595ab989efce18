"""
Dynatrace SLI bridge.

Derives SLI values, SLI definitions and SLO documents from Dynatrace
dashboards, metrics, SLOs and problems for continuous delivery quality gates.
"""

from dynatrace_sli.config.settings import DynatraceConfig, Settings, get_settings
from dynatrace_sli.context import DeliveryContext, SLIFilter
from dynatrace_sli.service import SLIRetrieval, SLIService

__version__ = "0.1.0"

__all__ = [
    "DeliveryContext",
    "DynatraceConfig",
    "SLIFilter",
    "SLIRetrieval",
    "SLIService",
    "Settings",
    "__version__",
    "get_settings",
]
