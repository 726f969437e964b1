"""
Capability descriptor and hardware detection.
Capabilities come from the engine build (CUDA, OpenGL, CGAL) and are resolved once
per process, then passed explicitly to the stage runner. RAM (psutil) and VRAM
(nvidia-smi) are informational only.
"""
import subprocess
from dataclasses import dataclass

import psutil


@dataclass(frozen=True)
class Capabilities:
    """Backends exposed by the engine build."""

    cuda: bool = False
    opengl: bool = False
    cgal: bool = False

    def describe(self) -> str:
        names = [n for n in ("cuda", "opengl", "cgal") if getattr(self, n)]
        return ", ".join(names) if names else "cpu only"


@dataclass
class HardwareProfile:
    """RAM (GB) and VRAM (MB) of the host."""

    ram_gb: float
    vram_mb: int

    @property
    def vram_gb(self) -> float:
        return self.vram_mb / 1024.0


def detect_capabilities(engine) -> Capabilities:
    """Ask the engine which backends its build exposes. Call once at process start."""
    return engine.capabilities()


def detect_ram_gb() -> float:
    """Total system RAM in GB."""
    return psutil.virtual_memory().total / (1024.0 ** 3)


def detect_vram_mb() -> int:
    """Largest GPU memory in MB as reported by nvidia-smi; 0 without an NVIDIA driver."""
    try:
        out = subprocess.run(
            ["nvidia-smi", "--query-gpu=memory.total", "--format=csv,noheader,nounits"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired):
        return 0
    if out.returncode != 0:
        return 0
    totals = [int(line.strip()) for line in out.stdout.splitlines() if line.strip().isdigit()]
    return max(totals, default=0)


def get_hardware_profile() -> HardwareProfile:
    """Detect RAM and VRAM and return a HardwareProfile."""
    return HardwareProfile(ram_gb=detect_ram_gb(), vram_mb=detect_vram_mb())
