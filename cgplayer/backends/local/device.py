"""
Sound card selection.

Enumerates output devices through sounddevice (PortAudio) and resolves the
configured device setting to one of them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class OutputDevice:
    """An audio output device."""

    index: int
    name: str
    channels: int
    default_samplerate: float
    is_default: bool


def _import_sounddevice():
    """Lazy import of sounddevice, so PortAudio is only needed for local output."""
    try:
        import sounddevice

        return sounddevice
    except (ImportError, OSError) as e:
        raise ImportError(f"sounddevice is required for the local backend: {e}")


def list_output_devices() -> list[OutputDevice]:
    """List devices that have at least one output channel."""
    sd = _import_sounddevice()
    default_output = sd.default.device[1]

    return [
        OutputDevice(
            index=i,
            name=dev["name"],
            channels=dev["max_output_channels"],
            default_samplerate=dev["default_samplerate"],
            is_default=(i == default_output),
        )
        for i, dev in enumerate(sd.query_devices())
        if dev["max_output_channels"] > 0
    ]


def find_output_device(setting: str) -> OutputDevice:
    """
    Resolve a device setting.

    Args:
        setting: "default", a device index, or a (partial) device name

    Raises:
        ValueError: If nothing matches; the message lists what is available
    """
    devices = list_output_devices()
    if not devices:
        raise ValueError("No audio output devices found")

    if setting.lower() == "default":
        for dev in devices:
            if dev.is_default:
                return dev
        logger.warning(f"No default output device, using {devices[0].name}")
        return devices[0]

    if setting.isdigit():
        index = int(setting)
        for dev in devices:
            if dev.index == index:
                return dev
        raise ValueError(
            f"No output device with index {index}. Available:\n{format_device_list(devices)}"
        )

    wanted = setting.lower()
    exact = [d for d in devices if d.name.lower() == wanted]
    if exact:
        return exact[0]

    partial = [d for d in devices if wanted in d.name.lower()]
    if len(partial) > 1:
        logger.warning(f"'{setting}' matches {len(partial)} devices, using {partial[0].name}")
    if partial:
        return partial[0]

    raise ValueError(
        f"No output device matching '{setting}'. Available:\n{format_device_list(devices)}"
    )


def format_device_list(devices: Optional[list[OutputDevice]] = None) -> str:
    """One line per device, for error messages and --list-devices."""
    if devices is None:
        devices = list_output_devices()

    return "\n".join(
        f"  [{dev.index}] {dev.name}{' (default)' if dev.is_default else ''}"
        f" - {dev.channels}ch, {int(dev.default_samplerate)}Hz"
        for dev in devices
    )
