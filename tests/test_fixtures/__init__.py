"""
Test Fixtures Package

Shared test doubles used by the fixtures in ``tests/conftest.py`` and by
tests that need a customised instance.
"""

from .fakes import FakeClock, FakeModel, FakeReferenceSource, FakeSink, FakeTracker, InMemoryRedis

__all__ = ["FakeClock", "FakeModel", "FakeReferenceSource", "FakeSink", "FakeTracker", "InMemoryRedis"]
