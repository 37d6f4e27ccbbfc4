"""Scheduled background jobs."""

from .housekeeping import register_scheduler, run_housekeeping_once

__all__ = ["register_scheduler", "run_housekeeping_once"]
