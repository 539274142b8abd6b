"""Check-suite configuration: file loading, resolution and selection."""

from greenbay.config.builder import ConfigurationBuilder
from greenbay.config.configuration import Configuration, Selection, SelectionError
from greenbay.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigLoadError,
    Options,
    RawTest,
    load_raw_config,
    resolve_config_path,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ConfigLoadError",
    "Configuration",
    "ConfigurationBuilder",
    "Options",
    "RawTest",
    "Selection",
    "SelectionError",
    "load_raw_config",
    "resolve_config_path",
]
