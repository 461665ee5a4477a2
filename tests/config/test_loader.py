from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from trip_curator.config import ConfigLocator, ConfigRepository, GlobalConfig, RankingWeights
from trip_curator.errors import InvalidConfigError


def test_config_locator_uses_env_and_creates_directories(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRIP_CURATOR_HOME", str(tmp_path))
    locator = ConfigLocator()
    assert locator.project_root == tmp_path.resolve()
    assert locator.sessions_dir == tmp_path.resolve() / "data" / "sessions"
    for path in (locator.data_dir, locator.sessions_dir, locator.outputs_dir, locator.logs_dir):
        assert path.exists()
    assert locator.global_config_path().name == "global_config.yaml"


def test_missing_global_config_is_written_with_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRIP_CURATOR_HOME", str(tmp_path))
    repo = ConfigRepository(ConfigLocator())
    config = repo.load_global_config()
    assert config == GlobalConfig()
    assert repo.locator.global_config_path().exists()


def test_config_repository_global_roundtrip(temp_config_repository: ConfigRepository) -> None:
    config = GlobalConfig.model_validate(
        {
            "concurrency": {"default_limit": 4, "per_provider": {"places": 2}},
            "validation": {"strategy": "batch", "batch_size": 4},
            "pipeline": {"export_formats": ["json", "csv"]},
            "enable_progress_bar": False,
        }
    )
    temp_config_repository.save_global_config(config)
    assert temp_config_repository.reload() == config


def test_yaml_must_hold_a_mapping(temp_config_repository: ConfigRepository) -> None:
    temp_config_repository.locator.global_config_path().write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(InvalidConfigError):
        temp_config_repository.reload()


def test_ranking_weights_must_sum_to_one() -> None:
    with pytest.raises(ValidationError):
        RankingWeights(relevance=0.5, credibility=0.5, recency=0.5, diversity=0.0)


def test_invalid_concurrency_rejected() -> None:
    with pytest.raises(ValidationError):
        GlobalConfig.model_validate({"concurrency": {"default_limit": 0}})
    with pytest.raises(ValidationError):
        GlobalConfig.model_validate({"concurrency": {"per_provider": {"places": 0}}})
