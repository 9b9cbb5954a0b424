"""Shared pytest configuration and fixtures."""

pytest_plugins = [
    "bookings.tests.fixtures",
]
