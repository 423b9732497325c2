"""Bundled load solver, run as ``python -m dispatch_app.solver``."""

from .cvrp import SolverInfeasibleError, solve_loads

__all__ = ["SolverInfeasibleError", "solve_loads"]
