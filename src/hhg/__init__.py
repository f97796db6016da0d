"""Healthy Habits Game progress and social-graph consistency engine."""

__version__ = "0.1.0"
