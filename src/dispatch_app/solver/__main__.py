"""Command line entry point for the bundled load solver.

Reads the optimization instance from ``--json``, prints the suggested
loads as a JSON array on stdout and exits 0. Any failure is reported on
stderr with a nonzero exit code.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .cvrp import SolverInfeasibleError, solve_loads

logger = logging.getLogger("dispatch_app.solver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dispatch_app.solver", description="Suggest vehicle loads for pending orders.")
    parser.add_argument("--json", required=True, dest="payload", help="Serialized optimization instance.")
    parser.add_argument("--time-limit", type=int, default=30, help="Search time limit in seconds.")
    parser.add_argument("--first-solution-strategy", default="PATH_CHEAPEST_ARC")
    parser.add_argument("--local-search-metaheuristic", default="GUIDED_LOCAL_SEARCH")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")

    try:
        payload = json.loads(args.payload)
    except json.JSONDecodeError as exc:
        print(f"Invalid instance JSON: {exc}", file=sys.stderr)
        return 1
    if not isinstance(payload, dict):
        print("Invalid instance JSON: expected an object", file=sys.stderr)
        return 1

    try:
        loads = solve_loads(
            payload,
            time_limit_seconds=args.time_limit,
            first_solution_strategy=args.first_solution_strategy,
            local_search_metaheuristic=args.local_search_metaheuristic,
        )
    except SolverInfeasibleError as exc:
        print(f"Optimization infeasible: {exc}", file=sys.stderr)
        return 1
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        print(f"Malformed optimization instance: {exc!r}", file=sys.stderr)
        return 1

    logger.info("Suggested %s loads", len(loads))
    print(json.dumps(loads))
    return 0


if __name__ == "__main__":
    sys.exit(main())
