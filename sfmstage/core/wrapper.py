"""
Subprocess guard for COLMAP command-line tools the bindings do not cover.
Output is streamed line by line to the stage logger; a non-zero exit or a timeout
is an EngineFailure, and a missing binary is BackendUnavailable. No retries.
"""
import os
import shutil
import subprocess
import threading
from pathlib import Path

from .exceptions import BackendUnavailable, EngineFailure
from .logger import get_logger

ENV_COLMAP_BIN = "SFMSTAGE_COLMAP_BIN"

_log = get_logger("wrapper")


def get_colmap_bin(configured=None) -> str:
    """Resolve colmap executable: env SFMSTAGE_COLMAP_BIN > settings colmap_bin > PATH."""
    for candidate in (os.environ.get(ENV_COLMAP_BIN, ""), configured or ""):
        candidate = str(candidate).strip()
        if candidate:
            return os.path.abspath(candidate) if os.path.sep in candidate else candidate
    found = shutil.which("colmap")
    if found is None:
        raise BackendUnavailable(
            "colmap executable not found (set %s or `colmap_bin` in settings)" % ENV_COLMAP_BIN
        )
    return found


def run_command(command: list, stage_name: str, timeout: int = 3600, logger=None) -> None:
    """Run command to completion, streaming combined stdout/stderr to logger."""
    logger = logger or _log
    logger.debug("Running: %s", " ".join(str(c) for c in command))
    try:
        proc = subprocess.Popen(
            [str(c) for c in command],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
    except FileNotFoundError as e:
        raise BackendUnavailable("%s: cannot execute %s" % (stage_name, command[0])) from e
    except PermissionError as e:
        raise BackendUnavailable("%s: %s is not executable" % (stage_name, command[0])) from e

    tail: list[str] = []

    def read_output():
        for line in proc.stdout:
            line = line.rstrip()
            if line:
                logger.debug(line)
                tail.append(line)
                del tail[:-20]

    reader = threading.Thread(target=read_output, name="output-%s" % stage_name, daemon=True)
    reader.start()
    try:
        returncode = proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
        raise EngineFailure("%s timed out after %ds" % (stage_name, timeout)) from None
    finally:
        reader.join(timeout=5)
        proc.stdout.close()

    if returncode != 0:
        last = tail[-1] if tail else "no output"
        raise EngineFailure("%s failed with code %d: %s" % (stage_name, returncode, last))


def colmap_model_converter(colmap_bin: str, input_path, output_path, output_type: str, logger=None) -> None:
    """colmap model_converter --input_path <model dir> --output_path <out> --output_type <TYPE>."""
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    run_command(
        [
            colmap_bin, "model_converter",
            "--input_path", str(input_path),
            "--output_path", str(output_path),
            "--output_type", output_type,
        ],
        "model_converter",
        logger=logger,
    )
