"""Point-in-time signal convergence pick engine."""

__version__ = "0.1.0"
