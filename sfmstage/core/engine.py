"""
Abstract engine interface. Pipeline only interacts with BaseEngine.
Long-running operations return a Stage; the StageRunner decides where it runs.
Use create_engine() to get a concrete implementation without knowing engine details.
"""
from .hardware import Capabilities
from .stage import ComputeContext


class BaseEngine:
    """Abstract interface for reconstruction engines (pycolmap, test fakes)."""

    name = "base"

    def capabilities(self) -> Capabilities:
        raise NotImplementedError

    def create_compute_context(self) -> ComputeContext:
        return ComputeContext(self.name)

    def feature_extractor(self, database_path, image_path, image_names, options, use_gpu):
        raise NotImplementedError

    def exhaustive_matcher(self, database_path, options, use_gpu):
        raise NotImplementedError

    def new_reconstruction_manager(self, seed_path=None):
        """Empty manager, or one holding the model(s) read from seed_path."""
        raise NotImplementedError

    def incremental_mapper(self, database_path, image_path, options, manager, progress, image_names=()):
        """Stage that grows manager; emits ProgressKind events through progress."""
        raise NotImplementedError

    def read_reconstruction(self, path):
        raise NotImplementedError

    def image_undistorter(self, output_type, input_path, image_path, output_path, options):
        raise NotImplementedError

    def create_database(self, database_path):
        raise NotImplementedError

    def patch_match_stereo(self, workspace_path, workspace_format, pmvs_option_name, options):
        raise NotImplementedError

    def stereo_fusion(self, output_path, workspace_path, workspace_format, pmvs_option_name, input_type, options):
        raise NotImplementedError

    def poisson_meshing(self, input_path, output_path, options):
        raise NotImplementedError

    def sparse_delaunay_meshing(self, input_path, output_path, options):
        raise NotImplementedError

    def dense_delaunay_meshing(self, input_path, output_path, options):
        raise NotImplementedError


def create_engine(engine_type: str = "pycolmap") -> BaseEngine:
    """
    Factory: create engine by type name.
    API and CLI should use this instead of importing engine classes directly.
    """
    if engine_type == "pycolmap":
        from sfmstage.engines.pycolmap_engine import PycolmapEngine
        return PycolmapEngine()
    raise ValueError(f"Unknown engine type: {engine_type}")
