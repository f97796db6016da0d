"""Streaks, milestones and achievements."""
