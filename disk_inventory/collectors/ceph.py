"""Ceph OSD collector"""

from typing import Dict, List, Tuple

from .base import BaseCollector
from .normalize import base_device
from ..registry import DriveRegistry, Keyspace

# ceph-volume device type to array name
OSD_GROUPS = {"block": "ceph", "db": "ceph-db", "wal": "ceph-wal"}


class CephCollector(BaseCollector):
    """Claims the devices backing local OSDs"""

    name = "ceph"
    commands = ("ceph-volume",)

    def collect(self, registry: DriveRegistry) -> None:
        output = self._execute_command([self.cmd, "lvm", "list", "--format", "json"])
        data = self._parse_json_output(output, "Failed to parse ceph-volume output")
        for device, group in self.parse(data):
            registry.observe(device, Keyspace.DEVICE, {"array": group}, create=False)

    def parse(self, data: Dict) -> List[Tuple[str, str]]:
        """(parent disk, array name) pairs from `ceph-volume lvm list`"""
        devices = []
        for osd_id, volumes in sorted(data.items()):
            if not isinstance(volumes, list):
                continue
            for volume in volumes:
                group = OSD_GROUPS.get(volume.get("type", ""), "ceph")
                for device in volume.get("devices", []):
                    self.logger.debug(f"OSD {osd_id} uses {device} as {volume.get('type')}")
                    devices.append((base_device(device), group))
        return devices
