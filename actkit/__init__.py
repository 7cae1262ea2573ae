"""Workflow and action models, job planning, expression parsing and built-in expression functions."""

__version__ = "0.1.0"

__all__ = [
    "lookpath",
    "contexts",
    "action",
    "step",
    "github_context",
    "workflow",
    "planner",
    "parser",
    "values",
    "functions",
]