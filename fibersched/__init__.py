"""Cooperative fibers, named threads and a fiber-aware task scheduler."""

__version__ = "0.1.0"
__all__ = ["thread", "fiber", "scheduler", "demo"]