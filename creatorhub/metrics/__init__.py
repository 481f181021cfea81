"""Derived metrics, reporting windows and display formatting."""
