from pathlib import Path

import pytest

from upose.core.config import settings as cfg


def test_load_settings_reads_updated_file(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("optimizer: simplex\noptimizer_iterations: 50\n", encoding="utf-8")
    monkeypatch.setenv("UPOSE_CONFIG", str(conf_path))

    first = cfg.load_settings()
    assert first.optimizer == "simplex"
    assert first.optimizer_iterations == 50

    conf_path.write_text("optimizer: random\noptimizer_iterations: 10\n", encoding="utf-8")

    second = cfg.load_settings()
    assert second.optimizer == "random"
    assert second.optimizer_iterations == 10


def test_env_overrides_yaml_and_keywords_override_env(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("stroke_width: 5\nreject_divisor: 32\n", encoding="utf-8")
    monkeypatch.setenv("UPOSE_CONFIG", str(conf_path))
    monkeypatch.setenv("UPOSE_STROKE_WIDTH", "13")

    s = cfg.load_settings()
    assert s.stroke_width == 13
    assert s.reject_divisor == 32.0

    s2 = cfg.load_settings(stroke_width=3)
    assert s2.stroke_width == 3


def test_missing_config_file_uses_defaults(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("UPOSE_CONFIG", str(tmp_path / "missing.yml"))
    s = cfg.load_settings()
    assert s.min_candidates == 3
    assert s.reject_divisor == 64.0
    assert s.prior_bounds_x == (-48.0, 48.0)


def test_yaml_lists_become_bounds(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("prior_bounds_y: [-10, 30]\nmax_candidates: null\n", encoding="utf-8")
    monkeypatch.setenv("UPOSE_CONFIG", str(conf_path))
    s = cfg.load_settings()
    assert s.prior_bounds_y == (-10.0, 30.0)
    assert s.max_candidates is None


def test_prior_validation():
    with pytest.raises(ValueError):
        cfg.TrackerSettings(prior_bounds_x=(5.0, 5.0))
    with pytest.raises(ValueError):
        cfg.TrackerSettings(prior_bounds_y=(10.0, -10.0))
    with pytest.raises(ValueError):
        cfg.TrackerSettings(prior_scale=0.0)


def test_optimizer_validation():
    with pytest.raises(ValueError):
        cfg.TrackerSettings(optimizer="genetic")
    with pytest.raises(ValueError):
        cfg.TrackerSettings(optimizer_radius=0.0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(optimizer_iterations=-1)
    assert cfg.TrackerSettings(optimizer=" SIMPLEX ").optimizer == "simplex"
    assert cfg.TrackerSettings(optimizer_iterations=0).optimizer_iterations == 0


def test_assignment_validation():
    with pytest.raises(ValueError):
        cfg.TrackerSettings(min_candidates=0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(max_candidates=0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(reject_divisor=0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(size_weight=-1.0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(initial_face_width_fraction=0.0)


def test_misc_validation():
    with pytest.raises(ValueError):
        cfg.TrackerSettings(localization="guess")
    with pytest.raises(ValueError):
        cfg.TrackerSettings(stroke_width=0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(background_rate=1.5)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(candidate_blur=0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(candidate_threshold=300)

    s = cfg.TrackerSettings()
    with pytest.raises(ValueError):
        s.stroke_width = -2

