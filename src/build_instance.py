#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Build canonical IPInstances from .lp / .mps model files.
"""

from __future__ import annotations

from pathlib import Path

import configargparse
import tqdm
from loguru import logger

from instances.common import BoundednessMethod, Settings
from instances.ipinstance import instance_from_file
from instances.utils import describe
from solver.scip import ScipOracle


def build(settings: Settings) -> int:
    oracle = ScipOracle(settings)
    built = 0
    for path in tqdm.tqdm(
        settings.inputs, desc="Building instances", disable=not settings.show_progress
    ):
        try:
            instance = instance_from_file(
                path,
                oracle.clone(),
                infer_binary=settings.infer_binary,
                settings=settings,
            )
        except Exception as e:
            logger.error("Failed on {} – {}", path, e)
            continue
        logger.info("{}\n{}", path.name, describe(instance))
        built += 1
    return built


def main() -> None:
    parser = configargparse.ArgumentParser(
        allow_abbrev=False,
        description="[IP] Build canonical integer programming instances",
    )
    parser.add_argument(
        "--configs", is_config_file=True, required=False, help="Config file path"
    )
    parser.add_argument("inputs", type=str, nargs="+", help=".lp / .mps files")

    # Extraction
    e = parser.add_argument_group("extraction")
    e.add_argument(
        "--no_infer_binary",
        action="store_true",
        help="Do not add x <= 1 for binary variables",
    )
    e.add_argument("--integrality_tolerance", type=float, default=1e-6)
    e.add_argument(
        "--boundedness_method",
        type=str,
        choices=[BoundednessMethod.LP, BoundednessMethod.IP],
        default=BoundednessMethod.LP,
        help="Classify variables with the linear relaxation or with integer rays",
    )

    # SCIP
    s = parser.add_argument_group("scip")
    s.add_argument("--scip_time_limit", type=float, default=3600.0)
    s.add_argument("--scip_threads", type=int, default=1)
    s.add_argument("--scip_verbose", action="store_true")

    # System
    g = parser.add_argument_group("system")
    g.add_argument("--no_progress", action="store_true", help="Disable progress bars")

    args, _ = parser.parse_known_args()

    settings = Settings(
        inputs=tuple(Path(p) for p in args.inputs),
        infer_binary=not args.no_infer_binary,
        integrality_tolerance=args.integrality_tolerance,
        boundedness_method=args.boundedness_method,
        scip_time_limit=args.scip_time_limit,
        scip_threads=args.scip_threads,
        scip_verbose=args.scip_verbose,
        show_progress=not args.no_progress,
    )

    built = build(settings)
    logger.success("Built {} of {} instances", built, len(settings.inputs))


if __name__ == "__main__":
    main()
