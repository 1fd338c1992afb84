from __future__ import annotations

from pathlib import Path

from krcahpy.configs.paths import get_configs_dir, resolve_config_path


def test_get_configs_dir_exists() -> None:
    p = get_configs_dir()
    assert isinstance(p, Path)
    assert p.exists()


def test_resolve_config_path_packaged_template() -> None:
    for raw in ("Template_Krcah.ini", "Template_Krcah", "some/old/dir/Template_Krcah.ini"):
        resolved = resolve_config_path(raw)
        assert Path(resolved).exists()
        assert Path(resolved).name == "Template_Krcah.ini"


def test_resolve_config_path_passthrough(tmp_path: Path) -> None:
    cfg = tmp_path / "mine.ini"
    cfg.write_text("[GLOBAL]\n", encoding="utf-8")
    assert resolve_config_path(str(cfg)) == str(cfg)
    assert resolve_config_path("not_a_config.ini") == "not_a_config.ini"
