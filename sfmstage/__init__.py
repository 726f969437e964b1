"""sfmstage - stage orchestration for COLMAP-style 3D reconstruction."""

__version__ = "0.1.0"

from sfmstage.api import (
    SfmStageController,
    convert_model,
    create_database,
    delaunay_mesher,
    extract_features,
    match_features_exhaustively,
    patch_match_stereo,
    poisson_mesher,
    reconstruct_sparse,
    stereo_fusion,
    undistort_images,
)
from sfmstage.core.engine import create_engine

__all__ = [
    "__version__",
    "SfmStageController",
    "create_engine",
    "extract_features",
    "match_features_exhaustively",
    "reconstruct_sparse",
    "convert_model",
    "undistort_images",
    "create_database",
    "patch_match_stereo",
    "stereo_fusion",
    "poisson_mesher",
    "delaunay_mesher",
]
