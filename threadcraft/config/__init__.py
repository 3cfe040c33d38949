# Configuration
from .settings import Config, TestConfig, configure_logging, get_config

__all__ = [
    "Config",
    "TestConfig",
    "configure_logging",
    "get_config",
]
