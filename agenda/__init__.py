"""Appointment scheduling backend for a single-practitioner clinic."""

__version__ = "1.0.0"
