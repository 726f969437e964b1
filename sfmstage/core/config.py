"""
Stage and option constants. No loading logic (see sfmstage.config and options.py).
Stage registry, option group names, env names, exit codes.
"""
# ---------------------------------------------------------------------------
# Stage registry: CLI name -> api function name
# ---------------------------------------------------------------------------
STAGES = {
    "feature_extractor": "extract_features",
    "exhaustive_matcher": "match_features_exhaustively",
    "mapper": "reconstruct_sparse",
    "model_converter": "convert_model",
    "image_undistorter": "undistort_images",
    "database_creator": "create_database",
    "patch_match_stereo": "patch_match_stereo",
    "stereo_fusion": "stereo_fusion",
    "poisson_mesher": "poisson_mesher",
    "delaunay_mesher": "delaunay_mesher",
}

# ---------------------------------------------------------------------------
# Option groups (nested mappings in the project file)
# ---------------------------------------------------------------------------
GROUP_DATABASE = "database"
GROUP_IMAGE = "image"
GROUP_EXTRACTION = "extraction"
GROUP_MATCHING = "matching"
GROUP_MAPPER = "mapper"
GROUP_UNDISTORTION = "undistortion"
GROUP_PATCH_MATCH = "patch_match_stereo"
GROUP_FUSION = "stereo_fusion"
GROUP_POISSON = "poisson_meshing"
GROUP_DELAUNAY = "delaunay_meshing"

# ---------------------------------------------------------------------------
# Env var names
# ---------------------------------------------------------------------------
ENV_LOG_LEVEL = "SFMSTAGE_LOG_LEVEL"
ENV_LOG_DIR = "SFMSTAGE_LOG_DIR"

# ---------------------------------------------------------------------------
# Exit codes (two-valued; causes are only distinguished in the log)
# ---------------------------------------------------------------------------
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
