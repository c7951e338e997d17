"""LVM physical volume collector"""

from typing import List, Tuple

from .base import BaseCollector
from .normalize import base_device
from ..registry import DriveRegistry, Keyspace


class LvmCollector(BaseCollector):
    """Claims physical volumes for their volume group"""

    name = "lvm"
    commands = ("pvs",)

    def collect(self, registry: DriveRegistry) -> None:
        output = self._execute_command([self.cmd, "--noheadings", "--separator", "|",
                                        "-o", "pv_name,vg_name"])
        for device, vg_name in self.parse(output):
            registry.observe(device, Keyspace.DEVICE, {"array": vg_name}, create=False)

    @staticmethod
    def parse(output: str) -> List[Tuple[str, str]]:
        """(parent disk, volume group) pairs, orphan PVs are skipped"""
        volumes = []
        for line in output.splitlines():
            pv_name, _, vg_name = line.strip().partition("|")
            if pv_name and vg_name.strip():
                volumes.append((base_device(pv_name), vg_name.strip()))
        return volumes
