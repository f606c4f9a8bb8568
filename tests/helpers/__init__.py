"""Test helper utilities for Open Data Exporter tests."""

from .builders import aggregate_result
from .fixture_transport import FixtureTransport, load_fixture_responses

__all__ = ["FixtureTransport", "load_fixture_responses", "aggregate_result"]
