"""CLI command handlers."""

from .execute import execute_workflow

__all__ = ['execute_workflow']
