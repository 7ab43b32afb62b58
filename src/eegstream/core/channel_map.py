"""
EEG Channel Mapping - default channel labels for common headsets.

Streams that do not announce their channel labels get the known electrode
layout for the device family named in the stream, or generic ``ChN`` names.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DeviceLayout:
    """Known channel order for one device family."""
    manufacturer: str
    model: str
    keywords: tuple[str, ...]        # Matched against the lowercased stream name
    channels: tuple[str, ...]
    channels_wide: tuple[str, ...] = ()  # Alternate order for high-count variants


# Unicorn Hybrid Black: 8 EEG channels followed by motion and status channels
UNICORN = DeviceLayout(
    "g.tec medical engineering GmbH", "Unicorn Hybrid Black", ("unicorn",),
    ("Fz", "C3", "Cz", "C4", "Pz", "PO7", "Oz", "PO8",
     "ACC_X", "ACC_Y", "ACC_Z", "GYR_X", "GYR_Y", "GYR_Z",
     "Battery", "Counter", "Validation"),
)

# OpenBCI Cyton (8 ch) and Cyton+Daisy (16 ch)
OPENBCI = DeviceLayout(
    "OpenBCI", "Cyton Board", ("openbci", "cyton"),
    ("Fp1", "Fp2", "C3", "C4", "P7", "P8", "O1", "O2"),
    ("Fp1", "Fp2", "F7", "F3", "F4", "F8", "C3", "Cz",
     "C4", "T7", "T8", "P7", "P3", "Pz", "P4", "P8"),
)

EMOTIV = DeviceLayout(
    "Emotiv Inc.", "EPOC+", ("emotiv", "epoc"),
    ("AF3", "F7", "F3", "FC5", "T7", "P7", "O1",
     "O2", "P8", "T8", "FC6", "F4", "F8", "AF4"),
)

MUSE = DeviceLayout(
    "InteraXon", "Muse Headband", ("muse",),
    ("TP9", "AF7", "AF8", "TP10"),
)

DEVICE_LAYOUTS: list[DeviceLayout] = [UNICORN, OPENBCI, EMOTIV, MUSE]


def detect_layout(stream_name: str) -> Optional[DeviceLayout]:
    """Find the device layout whose keywords appear in the stream name."""
    name = stream_name.lower()
    for layout in DEVICE_LAYOUTS:
        if any(kw in name for kw in layout.keywords):
            return layout
    return None


def default_channel_labels(stream_name: str, channel_count: int) -> list[str]:
    """
    Build channel labels for a stream that did not provide any.

    Args:
        stream_name: Name announced by the source (used for device detection).
        channel_count: Number of channels in the stream.

    Returns:
        Exactly ``channel_count`` labels.
    """
    layout = detect_layout(stream_name)
    names: list[str] = []

    if layout is not None:
        channels = layout.channels
        if layout.channels_wide and channel_count > len(layout.channels):
            channels = layout.channels_wide
        names = list(channels[:channel_count])

    while len(names) < channel_count:
        names.append(f"Ch{len(names) + 1}")

    return names


def get_device_info(stream_name: str) -> tuple[str, str]:
    """Return ``(manufacturer, model)`` for the stream, if recognised."""
    layout = detect_layout(stream_name)
    if layout is None:
        return "Unknown Manufacturer", "EEG Device"
    return layout.manufacturer, layout.model
