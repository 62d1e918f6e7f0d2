"""Tests for configuration loading, validation and override behavior."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from msgnet.errors import ConfigError
from msgnet.utils.config import (
    DEFAULT_NODE_COLORS,
    Config,
    get_config,
    load_config,
    reset_config,
)


@pytest.fixture(autouse=True)
def _reset_global_config() -> None:
    """Ensure config singleton doesn't leak between tests."""
    reset_config()
    yield
    reset_config()


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


def test_defaults_match_original_system() -> None:
    cfg = load_config()

    assert cfg.layout.algorithm == "hierarchical"
    assert cfg.layout.spacing == 200.0
    assert cfg.physics.repulsion == 200.0
    assert cfg.physics.spring_length == 150.0
    assert cfg.physics.spring_constant == pytest.approx(0.04)
    assert cfg.extraction.llm_model == "llama3.2"
    assert cfg.extraction.use_llm is False
    assert cfg.node_colors["person"] == "#FF6B6B"
    assert cfg.node_shapes["organization"] == "box"
    assert set(cfg.node_colors) == set(DEFAULT_NODE_COLORS)
    assert cfg.text_processing.remove_stopwords is True


def test_yaml_file_values(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(
        cfg_path,
        {
            "layout": {"algorithm": "circular", "spacing": 120},
            "graph": {"consolidation": "consolidated"},
        },
    )

    cfg = load_config(cfg_path)

    assert cfg.layout.algorithm == "circular"
    assert cfg.layout.spacing == 120.0
    assert cfg.graph.consolidation == "consolidated"
    assert get_config() is cfg


def test_json_file_values(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text(
        json.dumps({"text_processing": {"custom_stopwords": ["alpha", "beta"]}}),
        encoding="utf-8",
    )

    cfg = load_config(cfg_path)

    assert cfg.text_processing.custom_stopwords == ["alpha", "beta"]


def test_env_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"layout": {"spacing": 250, "algorithm": "force"}})

    monkeypatch.setenv("MSGNET_LAYOUT__SPACING", "300")

    cfg = load_config(cfg_path)

    assert cfg.layout.spacing == 300.0
    assert cfg.layout.algorithm == "force"


def test_non_positive_spacing_is_config_error(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"layout": {"spacing": 0}})

    with pytest.raises(ConfigError, match="layout.spacing"):
        load_config(cfg_path)


def test_unknown_layout_is_config_error(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"layout": {"algorithm": "spiral"}})

    with pytest.raises(ConfigError):
        load_config(cfg_path)


def test_invalid_regex_is_config_error(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"extraction": {"entity_patterns": ["([A-Z"]}})

    with pytest.raises(ConfigError, match="entity_patterns"):
        load_config(cfg_path)


def test_missing_file_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "absent.yaml")


def test_non_mapping_root_is_config_error(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(cfg_path)


def test_logging_level_is_uppercased() -> None:
    cfg = Config(logging={"level": "debug"})

    assert cfg.logging.level == "DEBUG"


def test_get_config_requires_load() -> None:
    with pytest.raises(RuntimeError):
        get_config()


def test_sample_config_file_loads() -> None:
    sample = Path(__file__).resolve().parents[1] / "config" / "config.yaml"

    cfg = load_config(sample)

    assert cfg == Config()
