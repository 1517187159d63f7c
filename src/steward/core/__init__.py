"""Steward core data models."""
