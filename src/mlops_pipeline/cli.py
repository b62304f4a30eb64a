#!/usr/bin/env python3
"""
Command line entry point: ``mlops-pipeline --config pipeline.yml``.
Exit status is 0 when the pipeline succeeds, 1 when it fails and 2 when the
configuration cannot be loaded.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from mlops_pipeline.config.pipeline_config import BuildContext, load_pipeline_config
from mlops_pipeline.orchestration.pipeline_orchestrator import run_pipeline
from mlops_pipeline.shared.exceptions import ConfigurationError
from mlops_pipeline.shared.logging_setup import setup_logging

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='MLOps Pipeline Orchestrator')
    parser.add_argument('--config', required=True,
                        help='Path to the pipeline YAML configuration')
    parser.add_argument('--workspace', default='.',
                        help='Project checkout the pipeline runs in')
    parser.add_argument('--branch', help='Branch name (defaults to BRANCH_NAME / GIT_BRANCH)')
    parser.add_argument('--build-number', help='Build number (defaults to BUILD_NUMBER)')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    workspace = Path(args.workspace)
    config_path = Path(args.config)
    if not config_path.is_absolute() and not config_path.exists():
        config_path = workspace / config_path

    try:
        config = load_pipeline_config(config_path)
    except ConfigurationError as e:
        logger.error(f"Invalid pipeline configuration: {e}")
        return EXIT_CONFIG_ERROR

    context = BuildContext.from_environment(branch=args.branch, build_number=args.build_number)
    outcome = run_pipeline(config, context=context, workspace=workspace)

    return EXIT_SUCCESS if outcome.succeeded else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
