"""
Camera model catalog. Fixed and finite: name, numeric id, intrinsic arity.
The engine owns the projection math; this module only knows shapes.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class CameraModel:
    model_id: int
    name: str
    num_params: int
    params_info: str


CAMERA_MODELS = (
    CameraModel(0, "SIMPLE_PINHOLE", 3, "f, cx, cy"),
    CameraModel(1, "PINHOLE", 4, "fx, fy, cx, cy"),
    CameraModel(2, "SIMPLE_RADIAL", 4, "f, cx, cy, k"),
    CameraModel(3, "RADIAL", 5, "f, cx, cy, k1, k2"),
    CameraModel(4, "OPENCV", 8, "fx, fy, cx, cy, k1, k2, p1, p2"),
    CameraModel(5, "OPENCV_FISHEYE", 8, "fx, fy, cx, cy, k1, k2, k3, k4"),
    CameraModel(6, "FULL_OPENCV", 12, "fx, fy, cx, cy, k1, k2, p1, p2, k3, k4, k5, k6"),
    CameraModel(7, "FOV", 5, "fx, fy, cx, cy, omega"),
    CameraModel(8, "SIMPLE_RADIAL_FISHEYE", 4, "f, cx, cy, k"),
    CameraModel(9, "RADIAL_FISHEYE", 5, "f, cx, cy, k1, k2"),
    CameraModel(10, "THIN_PRISM_FISHEYE", 12, "fx, fy, cx, cy, k1, k2, p1, p2, k3, k4, sx1, sy1"),
)

_BY_NAME = {m.name: m for m in CAMERA_MODELS}
_BY_ID = {m.model_id: m for m in CAMERA_MODELS}


def exists_camera_model(name) -> bool:
    """
    True if name is in the catalog. Names are upper-cased before the exact comparison,
    so "pinhole" is accepted as PINHOLE. COLMAP compares case-sensitively; engines
    receive the canonical upper-case name.
    """
    return isinstance(name, str) and name.strip().upper() in _BY_NAME


def camera_model_by_name(name: str) -> CameraModel:
    """Look up a model by name (case-insensitive). KeyError if unknown."""
    return _BY_NAME[name.strip().upper()]


def camera_model_by_id(model_id: int) -> CameraModel:
    return _BY_ID[model_id]


def camera_model_names() -> tuple:
    return tuple(m.name for m in CAMERA_MODELS)
