"""Tests for the tile generation command line."""

import sys

import pytest

from tilegen.terrain.cli import main
from tilegen.terrain.persistence import load_tile

SMALL_TILE = """
resolution = 17
chunk_delay_ms = 0
erosion_iterations = 200

[erosion]
batch_size = 100

[placement]
min_distance = 100.0
max_level = 1000.0
"""


def _run(monkeypatch, *args: str) -> None:
    monkeypatch.setattr(sys, "argv", ["tilegen-generate", *args])
    main()


class TestMain:
    """Tests for the CLI entry point."""

    def test_generates_and_saves(self, tmp_path, monkeypatch) -> None:
        config_path = tmp_path / "tile.toml"
        config_path.write_text(SMALL_TILE)
        output = tmp_path / "out" / "tile.npz"

        _run(monkeypatch, "--seed", "3", "--config", str(config_path), "-o", str(output))

        data = load_tile(output)
        assert data.heights.shape == (17, 17)
        assert data.classification.shape == (17, 17, 3)
        assert data.metadata["seed"] == 3

    def test_flags_override_config(self, tmp_path, monkeypatch) -> None:
        config_path = tmp_path / "tile.toml"
        config_path.write_text(SMALL_TILE)
        output = tmp_path / "tile.npz"

        _run(
            monkeypatch,
            "--config",
            str(config_path),
            "--resolution",
            "9",
            "--no-erosion",
            "--no-placement",
            "--output",
            str(output),
        )

        data = load_tile(output)
        assert data.heights.shape == (9, 9)
        assert data.clusters == []
        assert data.metadata["config"]["erosion"]["enabled"] is False

    def test_bad_config_exits_2(self, tmp_path, monkeypatch) -> None:
        config_path = tmp_path / "bad.toml"
        config_path.write_text("base_elevation = 3.0\n")
        with pytest.raises(SystemExit) as excinfo:
            _run(monkeypatch, "--config", str(config_path))
        assert excinfo.value.code == 2

    def test_missing_config_exits_2(self, tmp_path, monkeypatch) -> None:
        with pytest.raises(SystemExit) as excinfo:
            _run(monkeypatch, "--config", str(tmp_path / "missing.toml"))
        assert excinfo.value.code == 2
