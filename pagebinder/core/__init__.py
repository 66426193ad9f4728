"""
Core module initialization.
"""

from .config import (
    Config,
    get_config,
    init_config,
    reload_config,
    RenderConfig,
    SiteConfig,
    APIConfig,
    MonitoringConfig,
    YAMLConfigLoader
)
from .exceptions import (
    PageBinderError,
    NavigationError,
    ReadinessTimeout,
    MeasurementError,
    EmissionError,
    ContextStartError
)

__all__ = [
    'Config',
    'get_config',
    'init_config',
    'reload_config',
    'RenderConfig',
    'SiteConfig',
    'APIConfig',
    'MonitoringConfig',
    'YAMLConfigLoader',
    'PageBinderError',
    'NavigationError',
    'ReadinessTimeout',
    'MeasurementError',
    'EmissionError',
    'ContextStartError',
]
