"""Configuration loading helpers for seedcrawl."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import yaml

from .defaults import BUILTIN_SOURCES
from .models import GlobalConfig, SourceConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
GLOBAL_CONFIG_FILENAME = "global_config.yaml"
SOURCE_CONFIG_SUFFIX = ".yaml"
HOME_ENV = "SEEDCRAWL_HOME"
API_KEY_ENV = "INGEST_API_KEY"
INGEST_URL_ENV = "SEEDCRAWL_INGEST_URL"


def _slugify(name: str) -> str:
    return "".join(ch.lower() if ch.isalnum() else "-" for ch in name).strip("-")


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    history_dir: Path | None = None
    sources_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get(HOME_ENV)
        if self.project_root is not None:
            root = Path(self.project_root).expanduser().resolve()
        elif env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = Path(__file__).resolve().parents[2]
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.history_dir = (self.data_dir / "history").resolve()
        self.sources_dir = (self.data_dir / "sources").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.history_dir, self.sources_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._global_cache: GlobalConfig | None = None

    # ------------------------------------------------------------------
    # Global configuration helpers
    # ------------------------------------------------------------------
    def load_global_config(self) -> GlobalConfig:
        if self._global_cache is not None:
            return self._global_cache
        path = self.locator.global_config_path()
        if path.exists():
            global_cfg = GlobalConfig.model_validate(_read_file(path))
        else:
            global_cfg = GlobalConfig()
            self.save_global_config(global_cfg)
        global_cfg = self._apply_env_overrides(global_cfg)
        self._global_cache = global_cfg
        return global_cfg

    def save_global_config(self, config: GlobalConfig) -> None:
        path = self.locator.global_config_path()
        _write_file(path, config.model_dump(mode="json"))
        self._global_cache = config

    @staticmethod
    def _apply_env_overrides(config: GlobalConfig) -> GlobalConfig:
        api_key = os.environ.get(API_KEY_ENV)
        endpoint = os.environ.get(INGEST_URL_ENV)
        if not api_key and not endpoint:
            return config
        sink_update: dict[str, object] = {}
        if api_key:
            sink_update["api_key"] = api_key
        if endpoint:
            sink_update["endpoint"] = endpoint
            sink_update["kind"] = "http"
        sink = config.sink.model_copy(update=sink_update)
        return config.model_copy(update={"sink": sink})

    # ------------------------------------------------------------------
    # Source configuration helpers
    # ------------------------------------------------------------------
    def source_path(self, source_name: str) -> Path:
        slug = _slugify(source_name)
        return self.locator.sources_dir / f"{slug}{SOURCE_CONFIG_SUFFIX}"

    def list_source_files(self) -> Iterable[Path]:
        for path in sorted(self.locator.sources_dir.glob("*")):
            if path.is_file() and path.suffix in CONFIG_EXTENSIONS:
                yield path

    def list_sources(self) -> list[SourceConfig]:
        """Configured sources first, then built-ins not overridden by a file."""

        sources = [self.load_source(path) for path in self.list_source_files()]
        known = {source.source_name for source in sources}
        for name, payload in BUILTIN_SOURCES.items():
            if name not in known:
                sources.append(SourceConfig.model_validate(payload))
        return sources

    def load_source(self, identifier: str | Path) -> SourceConfig:
        path = identifier if isinstance(identifier, Path) else self.source_path(identifier)
        if path.exists():
            return SourceConfig.model_validate(_read_file(path))
        if isinstance(identifier, str) and identifier in BUILTIN_SOURCES:
            return SourceConfig.model_validate(BUILTIN_SOURCES[identifier])
        raise FileNotFoundError(f"Source configuration not found: {identifier}")

    def save_source(self, config: SourceConfig) -> Path:
        path = self.source_path(config.source_name)
        _write_file(path, config.model_dump(mode="json", exclude_none=True))
        return path

    def delete_source(self, source_name: str) -> None:
        path = self.source_path(source_name)
        if path.exists():
            path.unlink()


__all__ = ["ConfigLocator", "ConfigRepository", "CONFIG_EXTENSIONS"]
