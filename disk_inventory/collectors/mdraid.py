"""Linux software RAID collector"""

from typing import List, Tuple
import os
import re

from .base import BaseCollector
from .normalize import base_device
from ..registry import DriveRegistry, Keyspace

MEMBER_RE = re.compile(r"^\s*\d+\s+\d+\s+\d+\s+(?:\d+|-)\s+(?P<state>.+?)\s+(?P<device>/dev/\S+)\s*$")


def array_name(device: str) -> str:
    """md0 for /dev/md0 and /dev/md/0, the name itself for /dev/md/data"""
    name = os.path.basename(device.rstrip("/"))
    return f"md{name}" if name.isdigit() else name


def member_state(text: str) -> str:
    tokens = text.lower().replace(",", " ").split()
    for state in ("faulty", "rebuilding", "active"):
        if state in tokens:
            return state
    return tokens[0] if tokens else ""


class MdRaidCollector(BaseCollector):
    """Claims md array members and reports their member state"""

    name = "mdraid"
    commands = ("mdadm",)

    def collect(self, registry: DriveRegistry) -> None:
        scan = self._execute_command([self.cmd, "--detail", "--scan", "--verbose"])
        for array in self.parse_scan(scan):
            detail = self._execute_command([self.cmd, "--detail", array])
            name = array_name(array)
            for device, state in self.parse_detail(detail):
                registry.observe(device, Keyspace.DEVICE, {"array": name, "state": state}, create=False)

    @staticmethod
    def parse_scan(output: str) -> List[str]:
        """Array device nodes from `mdadm --detail --scan`"""
        return [line.split()[1] for line in output.splitlines()
                if line.startswith("ARRAY") and len(line.split()) > 1]

    @staticmethod
    def parse_detail(output: str) -> List[Tuple[str, str]]:
        """(parent disk, member state) pairs from `mdadm --detail <array>`"""
        members = []
        for line in output.splitlines():
            match = MEMBER_RE.match(line)
            if match:
                members.append((base_device(match.group("device")), member_state(match.group("state"))))
        return members
