"""Local sound card output."""

from .backend import LocalAudioBackend
from .device import OutputDevice, find_output_device, format_device_list, list_output_devices

__all__ = [
    "LocalAudioBackend",
    "OutputDevice",
    "find_output_device",
    "format_device_list",
    "list_output_devices",
]
