"""Pydantic schemas for the scheduling API."""
