"""Test fixtures for the Tether test suite."""

from .relay_fixtures import (
    FakeClock,
    body_reader,
    make_relay_config,
    make_settings,
)

__all__ = [
    'FakeClock',
    'body_reader',
    'make_relay_config',
    'make_settings'
]
