from __future__ import annotations

from pathlib import Path


def get_configs_dir() -> Path:
    """Return the on-disk directory containing shipped config templates.

    Works for editable installs and installed wheels.
    """

    try:
        import importlib.resources as resources

        return Path(resources.files("krcahpy.configs"))
    except Exception:
        # Fallback: relative to this file
        return Path(__file__).resolve().parent


def _norm_path_str(p: str) -> str:
    return str(p).replace("\\", "/")


def resolve_config_path(raw: str) -> str:
    """Resolve a config path that may name a shipped template.

    If `raw` exists on disk, it is returned unchanged.
    Otherwise a bare file name (with or without `.ini`) is looked up in the
    packaged `krcahpy/configs/` folder.
    """

    if not raw:
        return raw

    try:
        if Path(raw).exists():
            return raw
    except Exception:
        pass

    name = Path(_norm_path_str(raw)).name
    for candidate_name in (name, f"{name}.ini"):
        candidate = get_configs_dir() / candidate_name
        if candidate.exists():
            return str(candidate)

    return raw
