"""
Reconstruction and ReconstructionManager seen from the orchestration layer.
Model internals (cameras, images, points) belong to the engine; here a model only
needs to write itself to a directory and report whether it is empty.
"""


class Reconstruction:
    """Opaque sparse model. Engines subclass and implement the I/O methods."""

    def write(self, path) -> None:
        raise NotImplementedError

    @property
    def num_reg_images(self) -> int:
        raise NotImplementedError

    @property
    def num_points3D(self) -> int:
        raise NotImplementedError

    def is_empty(self) -> bool:
        return self.num_reg_images == 0

    # Export capabilities used by model conversion
    def write_binary(self, path) -> None:
        raise NotImplementedError

    def write_text(self, path) -> None:
        raise NotImplementedError

    def export_nvm(self, path) -> None:
        raise NotImplementedError

    def export_bundler(self, bundle_path, list_path) -> None:
        raise NotImplementedError

    def export_ply(self, path) -> None:
        raise NotImplementedError

    def export_vrml(self, images_path, points3D_path, image_scale=1.0, image_rgb=(1.0, 0.0, 0.0)) -> None:
        raise NotImplementedError

    def summary(self) -> str:
        return "%d images, %d points" % (self.num_reg_images, self.num_points3D)


class ReconstructionManager:
    """
    Ordered models of one mapping run, indexed 0..N-1.
    Append-only while the run lasts; the mapper adds, the persistence controller reads.
    """

    def __init__(self, models=None):
        self._models = list(models or [])

    def size(self) -> int:
        return len(self._models)

    def __len__(self):
        return self.size()

    def get(self, idx: int) -> Reconstruction:
        if not 0 <= idx < self.size():
            raise IndexError("Reconstruction index %d out of range (size %d)" % (idx, self.size()))
        return self._models[idx]

    def add(self, model: Reconstruction) -> int:
        """Append a model; returns its index."""
        self._models.append(model)
        return len(self._models) - 1

    def __iter__(self):
        for idx in range(self.size()):
            yield self.get(idx)
