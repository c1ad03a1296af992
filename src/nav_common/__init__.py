"""Shared infrastructure for hosts of the NAV analytics engine."""
