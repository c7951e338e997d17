"""ZFS pool collector"""

from typing import List, Tuple

from .base import BaseCollector
from .normalize import base_device
from ..registry import DriveRegistry, Keyspace

# Auxiliary vdev sections and the suffix their sub-group gets
SECTIONS = {"logs": "log", "cache": "cache", "spares": "spare", "special": "special", "dedup": "dedup"}


class ZpoolCollector(BaseCollector):
    """Claims pool members; cache, log and spare devices get a sub-group of the pool"""

    name = "zpool"
    commands = ("zpool",)

    def collect(self, registry: DriveRegistry) -> None:
        output = self._execute_command([self.cmd, "status", "-LP"])
        for device, group, state in self.parse(output):
            registry.observe(device, Keyspace.DEVICE, {"array": group, "state": state}, create=False)

    def parse(self, output: str) -> List[Tuple[str, str, str]]:
        """(parent disk, group, state) triples from `zpool status -LP`"""
        members = []
        current_pool = None
        group = None
        in_config_section = False

        for line in output.splitlines():
            line = line.strip()

            if line.startswith("pool:"):
                current_pool = line.split(":", 1)[1].strip()
                group = current_pool
                in_config_section = False
                self.logger.debug(f"Found pool: {current_pool}")
            elif line.startswith("config:"):
                in_config_section = True
            elif line.startswith("errors:"):
                in_config_section = False
            elif in_config_section and current_pool and line:
                parts = line.split()
                if parts[0] in SECTIONS and len(parts) == 1:
                    group = f"{current_pool}-{SECTIONS[parts[0]]}"
                elif parts[0].startswith("/dev/"):
                    # Spares report AVAIL/INUSE, which is not a drive state
                    state = parts[1] if len(parts) > 1 and not group.endswith("-spare") else ""
                    members.append((base_device(parts[0]), group, state))

        return members
