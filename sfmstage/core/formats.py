"""
Format tokens per stage and the dispatcher that maps a token to one strategy.
Tokens compare case-insensitively; each stage's set is a closed Enum, so unknown
tokens fail at lookup with UnsupportedFormat.
"""
import ntpath
from enum import Enum
from typing import Callable, Mapping

from .exceptions import UnsupportedFormat


class ModelFormat(Enum):
    BIN = "bin"
    TXT = "txt"
    NVM = "nvm"
    BUNDLER = "bundler"
    PLY = "ply"
    VRML = "vrml"


class UndistortFormat(Enum):
    COLMAP = "colmap"
    PMVS = "pmvs"
    CMP_MVS = "cmp-mvs"

    @property
    def engine_name(self) -> str:
        return self.value.upper()


class WorkspaceFormat(Enum):
    COLMAP = "colmap"
    PMVS = "pmvs"

    @property
    def engine_name(self) -> str:
        return self.value.upper()


class FusionInputType(Enum):
    PHOTOMETRIC = "photometric"
    GEOMETRIC = "geometric"


class MeshingInputType(Enum):
    SPARSE = "sparse"
    DENSE = "dense"


def parse_format(formats, token, option: str):
    """Normalize token and return the matching member of formats."""
    normalized = str(token).strip().lower() if token is not None else ""
    try:
        return formats(normalized)
    except ValueError:
        raise UnsupportedFormat(option, token, [m.value for m in formats]) from None


class FormatDispatcher:
    """One strategy per member of a format Enum; dispatch(token, ...) calls it."""

    def __init__(self, option: str, formats, strategies: Mapping[Enum, Callable]):
        missing = [m.value for m in formats if m not in strategies]
        if missing:
            raise ValueError("No strategy for %s format(s): %s" % (option, ", ".join(missing)))
        self.option = option
        self.formats = formats
        self._strategies = dict(strategies)

    @property
    def valid_tokens(self) -> tuple:
        return tuple(m.value for m in self.formats)

    def resolve(self, token):
        return parse_format(self.formats, token, self.option)

    def dispatch(self, token, *args, **kwargs):
        fmt = self.resolve(token)
        return self._strategies[fmt](*args, **kwargs)


def strip_extension(path) -> str:
    """
    Drop the extension of the file name component only.
    "a.d/model.ply" -> "a.d/model"; "a.d/model" stays as is. ntpath splits on both / and \\.
    """
    return ntpath.splitext(str(path))[0]


def bundler_paths(output_path) -> tuple[str, str]:
    output_path = str(output_path)
    return output_path + ".bundle.out", output_path + ".list.txt"


def vrml_paths(output_path) -> tuple[str, str]:
    base = strip_extension(output_path)
    return base + ".images.wrl", base + ".points3D.wrl"


def _export_bundler(reconstruction, output_path):
    reconstruction.export_bundler(*bundler_paths(output_path))


def _export_vrml(reconstruction, output_path):
    images_path, points_path = vrml_paths(output_path)
    reconstruction.export_vrml(images_path, points_path, 1.0, (1.0, 0.0, 0.0))


CONVERSION_STRATEGIES = {
    ModelFormat.BIN: lambda rec, out: rec.write_binary(out),
    ModelFormat.TXT: lambda rec, out: rec.write_text(out),
    ModelFormat.NVM: lambda rec, out: rec.export_nvm(out),
    ModelFormat.BUNDLER: _export_bundler,
    ModelFormat.PLY: lambda rec, out: rec.export_ply(out),
    ModelFormat.VRML: _export_vrml,
}


def conversion_dispatcher(option: str = "converter_output_type") -> FormatDispatcher:
    return FormatDispatcher(option, ModelFormat, CONVERSION_STRATEGIES)
