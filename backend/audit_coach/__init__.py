"""Audit Coach backend: trainee case progression services."""

__version__ = "0.1.0"
