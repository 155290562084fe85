"""Run interdependent shell tasks with readiness-gated startup."""

__version__ = "0.1.0"
