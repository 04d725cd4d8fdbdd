"""Test mocks for csi-sanity.

Provides mock implementations for testing:
- FakePlugin: in-memory CSI plugin answering calls through the Transport interface
"""

from .fake_plugin import FakePlugin, FakePluginState, FakeVolume

__all__ = ["FakePlugin", "FakePluginState", "FakeVolume"]
