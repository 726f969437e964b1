"""
CLI entry point. Usage: sfmstage <stage> <project_file>
The project file (YAML, or COLMAP-style INI) holds every path and option of the stage.
Exit status is the stage's: 0 success, 1 failure.
"""
import argparse
import logging
import sys

from sfmstage.api import run_stage
from sfmstage.config import load_config
from sfmstage.core.config import STAGES
from sfmstage.core.logger import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sfmstage", description="sfmstage - run one reconstruction stage")
    parser.add_argument("stage", type=str, choices=sorted(STAGES), help="Stage to run")
    parser.add_argument("project_path", type=str, help="Project file (YAML or INI)")
    parser.add_argument("--log-level", type=str, default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Log level (default: INFO or SFMSTAGE_LOG_LEVEL)")
    parser.add_argument("--log-dir", type=str, default=None,
                        help="Directory for sfmstage.log (default: SFMSTAGE_LOG_DIR or console only)")
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="Path to YAML settings (default: sfmstage/config/default.yaml + SFMSTAGE_CONFIG)")
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)

    # Settings first so engine and snapshot name come from YAML (and --config override)
    settings = load_config(override_path=args.config)

    level_name = args.log_level or settings.get("log_level")
    level = getattr(logging, str(level_name).upper(), None) if level_name else None
    setup_logging(level=level, log_dir=args.log_dir or settings.get("log_dir"))

    sys.exit(run_stage(args.stage, args.project_path))


if __name__ == "__main__":
    main()
