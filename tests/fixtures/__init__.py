"""Test fixtures for tsstore tests.

- store: fake installer, fake registry and a recording diagnostics sink

Import fixtures in your tests using:
    from tests.fixtures.store import FakeInstaller, RecordingSink
"""
