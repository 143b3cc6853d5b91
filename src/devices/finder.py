"""Device discovery through ``flutter devices --machine``."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Sequence

from contracts.errors import DeviceResolutionError
from ports._process import ProcessFailure, ProcessRunner

from .device import Device, TargetPlatform

DeviceLister = Callable[[], List[Dict[str, Any]]]


class FlutterDeviceLister:
    """Lists attached devices using the Flutter tool."""

    def __init__(self, runner: ProcessRunner, flutter_command: str = "flutter") -> None:
        self._runner = runner
        self._flutter = flutter_command

    def __call__(self) -> List[Dict[str, Any]]:
        try:
            result = self._runner.run([self._flutter, "--no-version-check", "devices", "--machine"])
        except (ProcessFailure, OSError) as exc:
            raise DeviceResolutionError(f"Failed to list devices: {exc}") from exc

        # The tool may print banners before the JSON payload.
        output = result.output
        start = output.find("[")
        if start == -1:
            raise DeviceResolutionError("Failed to list devices: no device list in output")
        try:
            payload = json.loads(output[start:])
        except json.JSONDecodeError as exc:
            raise DeviceResolutionError(f"Failed to parse device list: {exc}") from exc
        if not isinstance(payload, list):
            raise DeviceResolutionError("Failed to parse device list: expected a JSON array")
        return [entry for entry in payload if isinstance(entry, dict)]


def parse_device(entry: Dict[str, Any]) -> Device | None:
    """Convert one ``--machine`` entry into a :class:`Device`.

    Returns ``None`` for platforms the runner cannot drive (web, linux, ...)
    and for devices flutter reports as unsupported.
    """

    platform = TargetPlatform.from_flutter(str(entry.get("targetPlatform", "")))
    if platform is None or entry.get("isSupported", True) is False:
        return None
    device_id = str(entry.get("id", ""))
    if not device_id:
        return None
    return Device(
        name=str(entry.get("name") or device_id),
        id=device_id,
        target_platform=platform,
        real=not bool(entry.get("emulator", False)),
    )


class DeviceFinder:
    def __init__(self, lister: DeviceLister, logger: logging.Logger | None = None) -> None:
        self._lister = lister
        self._logger = logger or logging.getLogger(__name__)

    def attached_devices(self) -> List[Device]:
        devices: List[Device] = []
        for entry in self._lister():
            device = parse_device(entry)
            if device is None:
                self._logger.debug("Skipping unsupported device %s", entry.get("id"))
                continue
            devices.append(device)
        return devices

    def find(self, selectors: Sequence[str]) -> List[Device]:
        """Return the attached devices matching *selectors*.

        Each selector matches a device id or name exactly. Without selectors
        the first attached device is returned. The result is empty only when
        no supported device is attached.
        """

        attached = self.attached_devices()
        if not attached:
            return []
        if not selectors:
            return [attached[0]]

        found: List[Device] = []
        for selector in selectors:
            matches = [d for d in attached if selector in (d.id, d.name)]
            if not matches:
                raise DeviceResolutionError(f"Device {selector} is not attached")
            for device in matches:
                if device not in found:
                    found.append(device)
        return found


__all__ = ["DeviceFinder", "DeviceLister", "FlutterDeviceLister", "parse_device"]
