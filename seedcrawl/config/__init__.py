"""Configuration package exports."""

from .defaults import BUILTIN_SOURCES
from .loader import ConfigLocator, ConfigRepository
from .models import (
    BackoffConfig,
    DedupConfig,
    FetcherConfig,
    GlobalConfig,
    RunOptions,
    ScheduleConfig,
    ScheduleType,
    SelectorConfig,
    SinkConfig,
    SourceCategory,
    SourceConfig,
    resolve_path,
)

__all__ = [
    "BUILTIN_SOURCES",
    "BackoffConfig",
    "ConfigLocator",
    "ConfigRepository",
    "DedupConfig",
    "FetcherConfig",
    "GlobalConfig",
    "RunOptions",
    "ScheduleConfig",
    "ScheduleType",
    "SelectorConfig",
    "SinkConfig",
    "SourceCategory",
    "SourceConfig",
    "resolve_path",
]
