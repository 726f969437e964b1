"""
Validation before any stage starts: camera model/parameters and filesystem preconditions.
Raises taxonomy errors; never writes to disk.
"""
import os
from pathlib import Path

import numpy as np

from .camera_models import camera_model_by_name, camera_model_names, exists_camera_model
from .exceptions import InvalidCameraModel, InvalidCameraParameters, PreconditionError


def parse_camera_params(params) -> np.ndarray:
    """
    Parse "f,cx,cy" (or a list of numbers) into a float vector.
    Empty string, None or empty list -> empty vector.
    """
    if params is None:
        return np.empty(0, dtype=np.float64)
    if isinstance(params, (int, float)) and not isinstance(params, bool):
        items = [params]
    elif isinstance(params, str):
        items = [s.strip() for s in params.split(",")]
        items = [s for s in items if s]
    elif isinstance(params, (list, tuple, np.ndarray)):
        items = list(params)
    else:
        raise InvalidCameraParameters("Invalid camera parameters %r: expected comma-separated numbers" % (params,))
    if not items:
        return np.empty(0, dtype=np.float64)
    try:
        return np.asarray([float(v) for v in items], dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidCameraParameters("Invalid camera parameters %r: %s" % (params, e)) from e


def verify_camera_params(camera_model: str, params) -> np.ndarray:
    """
    Check model exists and, if params are given, that they fit its arity and are finite.
    Empty params are accepted (the extractor estimates them). Returns the parsed vector.
    """
    if not exists_camera_model(camera_model):
        raise InvalidCameraModel(
            "Camera model %r does not exist - supported models are {%s}"
            % (camera_model, ", ".join(camera_model_names()))
        )
    model = camera_model_by_name(camera_model)
    values = parse_camera_params(params)
    if values.size == 0:
        return values
    if values.size != model.num_params:
        raise InvalidCameraParameters(
            "Invalid camera parameters for %s: expected %d values (%s), got %d"
            % (model.name, model.num_params, model.params_info, values.size)
        )
    if not np.all(np.isfinite(values)):
        raise InvalidCameraParameters(
            "Invalid camera parameters for %s: values must be finite" % model.name
        )
    return values


def require_dir(path, option_name: str) -> Path:
    """Path exists and is a directory."""
    p = Path(path)
    if not p.is_dir():
        raise PreconditionError("`%s` is not a directory: %s" % (option_name, p))
    return p


def require_writable_dir(path, option_name: str) -> Path:
    """Directory exists and the process may create files in it."""
    p = require_dir(path, option_name)
    if not os.access(p, os.W_OK | os.X_OK):
        raise PreconditionError("`%s` is not writable: %s" % (option_name, p))
    return p


def require_file(path, option_name: str) -> Path:
    p = Path(path)
    if not p.is_file():
        raise PreconditionError("`%s` is not a file: %s" % (option_name, p))
    return p


def read_list_file(path) -> list[str]:
    """Non-empty stripped lines of a text file (image lists)."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return [line.strip() for line in f if line.strip()]
    except UnicodeDecodeError as e:
        raise PreconditionError("List file %s is not UTF-8 text: %s" % (path, e)) from e
