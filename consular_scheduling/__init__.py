"""Appointment scheduling core for the consular services portal."""
