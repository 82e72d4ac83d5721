"""Direct and indirect solvers for regularised quasi-definite KKT systems."""

__version__ = "0.1.0"
__all__ = ["csparse", "direct", "indirect"]