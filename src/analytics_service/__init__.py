"""Async host-side facade wiring a NAV series store to the analytics engine."""

from .service import AnalyticsService

__all__ = ["AnalyticsService"]
