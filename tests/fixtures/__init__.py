# tests/fixtures/__init__.py
"""Shared test doubles and factories for pulsekit tests."""
