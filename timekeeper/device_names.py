"""Heuristic classification of computer/device names.

The API reports either the real hostname of the tracked machine
("Levis-MacBook-Air.local", "DESKTOP-4F7K2QX") or a generated
placeholder ("Computer-TthUmwrm", "User123"). Only the former says
anything about who is sitting at the machine.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Iterator, Mapping


class DeviceNameClass(str, Enum):
    REAL_NAME = "real_name"
    SYNTHETIC_PATTERN = "synthetic_pattern"
    UNKNOWN = "unknown"


# Placeholders generated by the tracking agent
SYNTHETIC_PATTERNS = [
    re.compile(r"^Computer-[A-Za-z0-9]{8}$"),
    re.compile(r"^User[0-9]+$"),
    re.compile(r"^Device[0-9]+$"),
    re.compile(r"^Unknown", re.IGNORECASE),
]

REAL_PATTERNS = [
    re.compile(r".*\.local$", re.IGNORECASE),
    re.compile(r".*\.domain\.com$", re.IGNORECASE),
    re.compile(r"DESKTOP-[A-Z0-9]{6,}", re.IGNORECASE),
    re.compile(r"^[A-Z][a-z]+-[A-Z][a-z]+"),  # "Johns-MacBook"
    re.compile(r"MacBook|iMac|iPad|iPhone", re.IGNORECASE),
    re.compile(r"LAPTOP-[A-Z0-9]+", re.IGNORECASE),
    re.compile(r"^[A-Z]{2,}[0-9]{2,}"),  # "WS001", "DEV123"
]

_MIN_LENGTH = 3

# Flat keys, then (parent, child) pairs for nested objects
_FLAT_FIELDS = (
    "computerName",
    "deviceName",
    "hostname",
    "machineName",
    "workstationName",
    "clientName",
    "computer_name",
    "device_name",
    "machine_name",
    "client_name",
    "workstation",
)
_NESTED_FIELDS = (
    ("device", "name"),
    ("device", "hostname"),
    ("computer", "name"),
    ("computer", "hostname"),
    ("machine", "name"),
    ("client", "hostname"),
    ("system", "hostname"),
    ("systemInfo", "hostname"),
    ("deviceInfo", "name"),
    ("computerInfo", "name"),
    ("metadata", "hostname"),
    ("metadata", "computerName"),
)


def classify_device_name(name: Any) -> DeviceNameClass:
    """Classify a device name as a real hostname, a placeholder, or neither."""
    if not isinstance(name, str):
        return DeviceNameClass.UNKNOWN
    name = name.strip()
    if len(name) < _MIN_LENGTH:
        return DeviceNameClass.UNKNOWN

    # Placeholders win over every "real" rule below
    if any(p.search(name) for p in SYNTHETIC_PATTERNS):
        return DeviceNameClass.SYNTHETIC_PATTERN
    if any(p.search(name) for p in REAL_PATTERNS):
        return DeviceNameClass.REAL_NAME

    if "." in name or ("-" in name and len(name) > 8):
        return DeviceNameClass.REAL_NAME
    if re.search(r"[A-Z]", name) and re.search(r"[a-z]", name) and len(name) > 5:
        return DeviceNameClass.REAL_NAME
    return DeviceNameClass.UNKNOWN


def is_real_device_name(name: Any) -> bool:
    return classify_device_name(name) is DeviceNameClass.REAL_NAME


def device_label(name: str) -> str:
    """Strip the domain suffix: "Levis-MacBook-Air.local" -> "Levis-MacBook-Air"."""
    name = name.strip()
    host, _, _ = name.partition(".")
    return host or name


def iter_device_names(raw: Mapping[str, Any]) -> Iterator[str]:
    """Yield every non-empty device/hostname string found in a raw record."""
    seen: set[str] = set()
    candidates: list[Any] = [raw.get(key) for key in _FLAT_FIELDS]
    for parent, child in _NESTED_FIELDS:
        nested = raw.get(parent)
        if isinstance(nested, Mapping):
            candidates.append(nested.get(child))

    for value in candidates:
        if isinstance(value, str) and value.strip() and value.strip() not in seen:
            seen.add(value.strip())
            yield value.strip()
