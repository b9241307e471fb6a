from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from seedcrawl.config.loader import ConfigLocator, ConfigRepository, _slugify
from seedcrawl.config.models import GlobalConfig, RunOptions, ScheduleConfig, ScheduleType, SinkConfig


def test_config_locator_uses_env_and_creates_directories(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SEEDCRAWL_HOME", str(tmp_path))
    locator = ConfigLocator()
    assert locator.project_root == tmp_path.resolve()
    assert locator.global_config_path() == tmp_path.resolve() / "data" / "global_config.yaml"
    for path in (locator.data_dir, locator.history_dir, locator.sources_dir, locator.logs_dir):
        assert path.exists()


def test_defaults_are_written_on_first_load(temp_config_repository: ConfigRepository) -> None:
    config = temp_config_repository.load_global_config()
    assert config.default_sources == ["yts", "1337x"]
    assert config.fetcher.min_delay == 3.0
    assert config.fetcher.max_in_flight == 2
    assert config.default_options.max_pages == 3
    assert config.sink.kind == "sqlite"
    assert config.dedup.reingest_window_seconds is None
    assert temp_config_repository.locator.global_config_path().exists()


def test_file_values_override_defaults(tmp_path: Path) -> None:
    locator = ConfigLocator(project_root=tmp_path)
    payload = {
        "fetcher": {"min_delay": 0.5, "backoff": {"max_attempts": 5}},
        "default_sources": ["yts"],
        "schedule": {"type": "cron", "value": "0 */6 * * *"},
    }
    locator.global_config_path().write_text(yaml.safe_dump(payload), encoding="utf-8")

    config = ConfigRepository(locator).load_global_config()

    assert config.fetcher.min_delay == 0.5
    assert config.fetcher.backoff.max_attempts == 5
    assert config.default_sources == ["yts"]
    assert config.schedule.type is ScheduleType.CRON


def test_environment_overrides_switch_to_http_sink(
    temp_config_repository: ConfigRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("INGEST_API_KEY", "from-env")
    monkeypatch.setenv("SEEDCRAWL_INGEST_URL", "https://ingest.example.org/api")

    config = temp_config_repository.load_global_config()

    assert config.sink.kind == "http"
    assert config.sink.api_key == "from-env"
    assert config.sink.endpoint == "https://ingest.example.org/api"
    saved = yaml.safe_load(temp_config_repository.locator.global_config_path().read_text(encoding="utf-8"))
    assert saved["sink"]["api_key"] is None


def test_builtin_sources_are_listed_and_overridable(
    temp_config_repository: ConfigRepository, sample_source_config
) -> None:
    names = [source.source_name for source in temp_config_repository.list_sources()]
    assert names == ["yts", "1337x"]

    temp_config_repository.save_source(sample_source_config(source_name="yts", adapter="yts", selectors=None))
    temp_config_repository.save_source(sample_source_config(source_name="alpha"))
    sources = {source.source_name: source for source in temp_config_repository.list_sources()}
    assert list(sources) == ["alpha", "yts", "1337x"]
    assert sources["yts"].base_url == "https://yts.test"


def test_source_cycle(temp_config_repository: ConfigRepository, sample_source_config) -> None:
    source = sample_source_config(source_name="Deep Archive", max_pages=4)
    path = temp_config_repository.save_source(source)
    assert path.name == "deep-archive.yaml"

    loaded = temp_config_repository.load_source("Deep Archive")
    assert loaded == source

    temp_config_repository.delete_source("Deep Archive")
    with pytest.raises(FileNotFoundError):
        temp_config_repository.load_source("Deep Archive")


def test_missing_source(temp_config_repository: ConfigRepository) -> None:
    with pytest.raises(FileNotFoundError):
        temp_config_repository.load_source("missing")


def test_run_options_accept_wire_names() -> None:
    options = RunOptions.model_validate({"maxPages": 7, "query": "  "})
    assert options.max_pages == 7
    assert options.query is None
    assert RunOptions(max_pages=2, query="dune").query == "dune"
    with pytest.raises(ValidationError):
        RunOptions.model_validate({"maxPages": 0})


def test_invalid_config_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        SinkConfig(kind="http")
    with pytest.raises(ValidationError):
        SinkConfig(batch_size=101)
    with pytest.raises(ValidationError):
        ScheduleConfig(type=ScheduleType.CRON, value=30)
    with pytest.raises(ValidationError):
        GlobalConfig(max_concurrent_sources=0)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Example Source", "example-source"),
        ("Already-Slug", "already-slug"),
        ("1337x", "1337x"),
    ],
)
def test_slugify_behaviour(raw: str, expected: str) -> None:
    assert _slugify(raw) == expected
