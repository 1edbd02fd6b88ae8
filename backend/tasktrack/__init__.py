"""Tasktrack: personal task management with dependencies and recurring tasks."""

__version__ = "0.1.0"
