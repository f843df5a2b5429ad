"""Protocol constants: GATT identifiers, RSSI sentinels and filter thresholds."""

from __future__ import annotations

# Data transfer service (DTS) and its two characteristics.
DTS_SERVICE_UUID = "09def0c1-7b06-4f33-8a82-7cb03e25e7f7"
DTS_OUTBOUND_CHAR_UUID = "09def0c2-7b06-4f33-8a82-7cb03e25e7f7"
DTS_INBOUND_CHAR_UUID = "09def0c3-7b06-4f33-8a82-7cb03e25e7f7"

# mcumgr Simple Management Protocol service.
SMP_SERVICE_UUID = "8d53dc1d-1db7-4cd3-868b-8a527460aa84"

MESH_PROVISIONING_SERVICE_UUID = "00001827-0000-1000-8000-00805f9b34fb"
MESH_PROXY_SERVICE_UUID = "00001828-0000-1000-8000-00805f9b34fb"

FILTER_SERVICE_UUIDS = frozenset(
    {
        DTS_SERVICE_UUID,
        SMP_SERVICE_UUID,
        MESH_PROVISIONING_SERVICE_UUID,
        MESH_PROXY_SERVICE_UUID,
    }
)

# A peripheral must expose one of these to be driven by the session.
PROTOCOL_MARKER_UUIDS = frozenset({DTS_SERVICE_UUID, SMP_SERVICE_UUID})

RSSI_UNKNOWN = 127
RSSI_FLOOR = -127
RSSI_FILTER_THRESHOLD = -50

UNKNOWN_NAME = "N/A"

_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"


def normalize_uuid(value: str) -> str:
    """Return the lower-case 128-bit form of a 16-, 32- or 128-bit UUID string."""
    normalized = value.strip().lower()
    if len(normalized) == 4:
        return f"0000{normalized}{_BASE_UUID_SUFFIX}"
    if len(normalized) == 8:
        return f"{normalized}{_BASE_UUID_SUFFIX}"
    return normalized
