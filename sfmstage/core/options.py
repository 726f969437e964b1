"""
Project configuration: load a grouped key-value file, merge the option groups a
stage asks for over built-in defaults, check required options.

File layout (YAML):

    database_path: /data/project/database.db
    image_path: /data/project/images
    mapper_output_path: /data/project/sparse
    extraction:
      camera_model: PINHOLE
      camera_params: "1200,1200,960,540"
    mapper:
      min_num_matches: 20

COLMAP-style INI is accepted too: top-level keys first, then one [section] per
group ([Mapper], [SiftExtraction], ... map onto the groups below).
"""
import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import yaml

from sfmstage.config import _deep_merge, _load_yaml

from .config import (
    GROUP_DATABASE,
    GROUP_DELAUNAY,
    GROUP_EXTRACTION,
    GROUP_FUSION,
    GROUP_IMAGE,
    GROUP_MAPPER,
    GROUP_MATCHING,
    GROUP_PATCH_MATCH,
    GROUP_POISSON,
    GROUP_UNDISTORTION,
)
from .exceptions import ConfigurationError
from .logger import get_logger

INI_TOP_SECTION = "__project__"

_log = get_logger("options")


@dataclass(frozen=True)
class Option:
    """A stage-local scalar option (top level of the project file)."""

    name: str
    default: Any = ""
    required: bool = False
    choices: str = ""
    aliases: tuple = ()


# Groups that are plain top-level options rather than nested mappings
TOP_LEVEL_GROUPS = {
    GROUP_DATABASE: (Option("database_path", required=True),),
    GROUP_IMAGE: (Option("image_path", required=True),),
}

# Defaults mirror COLMAP's option defaults
GROUP_DEFAULTS = {
    GROUP_EXTRACTION: {
        "camera_model": "SIMPLE_RADIAL",
        "single_camera": False,
        "single_camera_per_folder": False,
        "camera_params": "",
        "default_focal_length_factor": 1.2,
        "camera_mask_path": "",
        "max_image_size": 3200,
        "max_num_features": 8192,
        "estimate_affine_shape": False,
        "domain_size_pooling": False,
        "num_threads": -1,
        "use_gpu": True,
        "gpu_index": "-1",
    },
    GROUP_MATCHING: {
        "num_threads": -1,
        "use_gpu": True,
        "gpu_index": "-1",
        "max_ratio": 0.8,
        "max_distance": 0.7,
        "cross_check": True,
        "max_num_matches": 32768,
        "max_error": 4.0,
        "confidence": 0.999,
        "min_num_inliers": 15,
        "guided_matching": False,
        "block_size": 50,
    },
    GROUP_MAPPER: {
        "min_num_matches": 15,
        "ignore_watermarks": False,
        "multiple_models": True,
        "max_num_models": 50,
        "max_model_overlap": 20,
        "min_model_size": 10,
        "init_image_id1": -1,
        "init_image_id2": -1,
        "init_num_trials": 200,
        "extract_colors": True,
        "num_threads": -1,
        "ba_refine_focal_length": True,
        "ba_refine_principal_point": False,
        "ba_refine_extra_params": True,
        "ba_global_max_num_iterations": 50,
        "ba_local_max_num_iterations": 25,
    },
    GROUP_UNDISTORTION: {
        "blank_pixels": 0.0,
        "min_scale": 0.2,
        "max_scale": 2.0,
        "max_image_size": -1,
        "roi_min_x": 0.0,
        "roi_min_y": 0.0,
        "roi_max_x": 1.0,
        "roi_max_y": 1.0,
    },
    GROUP_PATCH_MATCH: {
        "max_image_size": -1,
        "gpu_index": "-1",
        "window_radius": 5,
        "window_step": 1,
        "num_samples": 15,
        "num_iterations": 5,
        "geom_consistency": True,
        "filter": True,
        "cache_size": 32.0,
    },
    GROUP_FUSION: {
        "max_image_size": -1,
        "min_num_pixels": 5,
        "max_num_pixels": 10000,
        "max_traversal_depth": 100,
        "max_reproj_error": 2.0,
        "max_depth_error": 0.01,
        "max_normal_error": 10.0,
        "check_num_images": 50,
        "cache_size": 32.0,
        "num_threads": -1,
    },
    GROUP_POISSON: {
        "point_weight": 1.0,
        "depth": 13,
        "color": 32.0,
        "trim": 10.0,
        "num_threads": -1,
    },
    GROUP_DELAUNAY: {
        "max_proj_dist": 20.0,
        "max_depth_dist": 0.05,
        "visibility_sigma": 3.0,
        "distance_sigma_factor": 1.0,
        "quality_regularization": 1.0,
        "max_side_length_factor": 25.0,
        "max_side_length_percentile": 95.0,
        "num_threads": -1,
    },
}

# COLMAP project.ini section names -> groups
INI_SECTION_ALIASES = {
    "imagereader": GROUP_EXTRACTION,
    "siftextraction": GROUP_EXTRACTION,
    "siftmatching": GROUP_MATCHING,
    "exhaustivematching": GROUP_MATCHING,
    "mapper": GROUP_MAPPER,
    "patchmatchstereo": GROUP_PATCH_MATCH,
    "stereofusion": GROUP_FUSION,
    "poissonmeshing": GROUP_POISSON,
    "delaunaymeshing": GROUP_DELAUNAY,
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ProjectConfiguration:
    """Resolved options for one stage: top-level scalars plus requested groups."""

    def __init__(self, source_path, values: dict, groups: dict):
        self.source_path = Path(source_path)
        self.values = dict(values)
        self.groups = {k: dict(v) for k, v in groups.items()}

    def __getitem__(self, name):
        return self.values[name]

    def __contains__(self, name):
        return name in self.values

    def get(self, name, default=None):
        return self.values.get(name, default)

    def group(self, name: str) -> dict:
        """Options of one group. KeyError if the stage did not request it."""
        return self.groups[name]

    def to_dict(self) -> dict:
        out = dict(self.values)
        out.update({k: dict(v) for k, v in self.groups.items()})
        return out

    def write(self, path) -> Path:
        """Snapshot the resolved configuration as YAML."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)
        return p


def _coerce(key: str, value, default):
    """Coerce value to the type of its default (INI values arrive as strings)."""
    if value is None:
        return default
    try:
        if isinstance(default, bool):
            if isinstance(value, bool):
                return value
            raw = str(value).strip().lower()
            if raw in _TRUE:
                return True
            if raw in _FALSE:
                return False
            raise ValueError("expected a boolean")
        if isinstance(default, int):
            if isinstance(value, bool):
                raise ValueError("expected an integer")
            if isinstance(value, float) and not value.is_integer():
                raise ValueError("expected an integer")
            return int(value)
        if isinstance(default, float):
            if isinstance(value, bool):
                raise ValueError("expected a number")
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError("Invalid value for `%s`: %r (%s)" % (key, value, e)) from e
    if isinstance(default, str) and isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return value


def _load_ini(path: Path) -> dict:
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError("Cannot read project file %s: %s" % (path, e)) from e
    try:
        parser.read_string("[%s]\n%s" % (INI_TOP_SECTION, text))
    except configparser.Error as e:
        raise ConfigurationError("Cannot parse project file %s: %s" % (path, e)) from e
    data: dict[str, Any] = {}
    for section in parser.sections():
        items = dict(parser.items(section))
        if section == INI_TOP_SECTION:
            data.update(items)
            continue
        key = section.strip().lower()
        group = INI_SECTION_ALIASES.get(key, key)
        data[group] = _deep_merge(data.get(group) or {}, items)
    return data


def load_project_file(project_path) -> dict:
    """Raw project file contents as a dict (YAML, or INI for .ini/.cfg)."""
    p = Path(project_path)
    if not p.is_file():
        raise ConfigurationError("Project file not found: %s" % p)
    if p.suffix.lower() in (".ini", ".cfg"):
        return _load_ini(p)
    try:
        return _load_yaml(p)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError("Cannot parse project file %s: %s" % (p, e)) from e


def _is_empty(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _resolve_option(raw: dict, option: Option):
    value = raw.get(option.name)
    for alias in option.aliases:
        if _is_empty(value):
            value = raw.get(alias)
    if option.required and _is_empty(value):
        hint = " %s" % option.choices if option.choices else ""
        raise ConfigurationError("Required option `%s`%s is missing or empty" % (option.name, hint))
    if _is_empty(value):
        return option.default
    return _coerce(option.name, value, option.default)


def _resolve_group(raw: dict, group: str) -> dict:
    defaults = GROUP_DEFAULTS[group]
    given = raw.get(group) or {}
    if not isinstance(given, dict):
        raise ConfigurationError("Option group `%s` must be a mapping" % group)
    unknown = sorted(set(given) - set(defaults))
    if unknown:
        _log.warning("Ignoring unknown option(s) in group `%s`: %s", group, ", ".join(unknown))
    resolved = {}
    for key, default in defaults.items():
        value = given.get(key)
        resolved[key] = default if _is_empty(value) else _coerce("%s.%s" % (group, key), value, default)
    return resolved


def resolve_options(project_path, groups: Iterable[str] = (), options: Iterable[Option] = ()) -> ProjectConfiguration:
    """
    Resolve the option groups and stage-local options a stage declares.
    Raises ConfigurationError naming the first missing/invalid option.
    """
    raw = load_project_file(project_path)
    values: dict[str, Any] = {}
    resolved_groups: dict[str, dict] = {}
    for group in groups:
        if group in TOP_LEVEL_GROUPS:
            for opt in TOP_LEVEL_GROUPS[group]:
                values[opt.name] = _resolve_option(raw, opt)
        elif group in GROUP_DEFAULTS:
            resolved_groups[group] = _resolve_group(raw, group)
        else:
            raise ConfigurationError("Unknown option group `%s`" % group)
    for opt in options:
        values[opt.name] = _resolve_option(raw, opt)
    return ProjectConfiguration(project_path, values, resolved_groups)
