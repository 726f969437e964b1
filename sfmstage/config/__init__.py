"""
Runtime settings from YAML. Project configurations live in core/options.py.
Default: sfmstage/config/default.yaml. Override: --config <file> or SFMSTAGE_CONFIG.
"""
import os
from pathlib import Path
from typing import Any

import yaml

_CACHE: dict[str, Any] | None = None
_CONFIG_DIR = Path(__file__).resolve().parent

ENGINES = ("pycolmap",)


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base (recursive). base is not mutated."""
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _defaults() -> dict:
    """Built-in defaults (no file)."""
    return {
        "engine": "pycolmap",
        "snapshot_name": "project.yaml",
        "log_level": None,
        "log_dir": None,
        "project_log": True,
        "gpu_fallback_to_cpu": True,
        "colmap_bin": None,
    }


def load_config(override_path: str | Path | None = None) -> dict:
    """
    Load settings: default.yaml + env SFMSTAGE_CONFIG + optional override file.
    Returns merged dict. Cached after first call unless override_path is given.
    """
    global _CACHE
    if override_path is not None:
        _CACHE = None

    if _CACHE is not None:
        return _CACHE

    base = _defaults()
    default_file = _CONFIG_DIR / "default.yaml"
    if default_file.exists():
        base = _deep_merge(base, _load_yaml(default_file))

    env_path = os.environ.get("SFMSTAGE_CONFIG")
    if env_path and Path(env_path).exists():
        base = _deep_merge(base, _load_yaml(Path(env_path)))

    if override_path is not None:
        p = Path(override_path)
        if p.exists():
            base = _deep_merge(base, _load_yaml(p))

    # Env SFMSTAGE_ENGINE wins; unknown names fall back to pycolmap
    engine = os.environ.get("SFMSTAGE_ENGINE", "").strip().lower() or str(base.get("engine") or "pycolmap").strip().lower()
    base["engine"] = engine if engine in ENGINES else "pycolmap"

    _CACHE = base
    return base


def get_config(override_path: str | Path | None = None) -> dict:
    """Alias for load_config; use for read-only access."""
    return load_config(override_path)


def reset_config() -> None:
    """Clear cache (e.g. for tests)."""
    global _CACHE
    _CACHE = None
