from .controller import (
    SfmStageController,
    convert_model,
    create_database,
    delaunay_mesher,
    extract_features,
    match_features_exhaustively,
    patch_match_stereo,
    poisson_mesher,
    reconstruct_sparse,
    run_stage,
    stereo_fusion,
    undistort_images,
)

__all__ = [
    "SfmStageController",
    "run_stage",
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
