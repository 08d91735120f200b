"""Workflow sequence engine: rule compilation, graph execution and run lifecycle."""

__version__ = "1.0.0"
