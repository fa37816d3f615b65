"""Utility helpers for the textile kernel."""
