"""
Device layer: picks the location backend per device and exposes pairing and
location simulation behind one interface.
"""
from .facade import DeviceFacade
from .models import Device

__all__ = ["Device", "DeviceFacade"]
