"""Scheduling, phone verification and booking core for a barber shop."""

__version__ = "0.1.0"
