"""Device descriptors and discovery."""

from .device import Device, TargetPlatform
from .finder import DeviceFinder, FlutterDeviceLister, parse_device

__all__ = ["Device", "DeviceFinder", "FlutterDeviceLister", "TargetPlatform", "parse_device"]
