"""Tempo: two-phase planning core for calendar, task backlog and inbox changes."""

__version__ = "0.1.0"
