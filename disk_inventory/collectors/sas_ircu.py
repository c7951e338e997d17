"""SAS2IRCU/SAS3IRCU expander collector"""

from typing import Dict, List, Optional
import re

from .base import BaseCollector
from .normalize import split_manufacturer, wwn_alias
from ..models import Location, MediaType
from ..registry import DriveRegistry, Keyspace

# Abbreviations printed after the state text, e.g. "Ready (RDY)"
STATE_NAMES = {
    "RDY": "Ready",
    "OPT": "Online",
    "AVL": "Available",
    "FLD": "Failed",
    "MIS": "Missing",
    "DGD": "Degraded",
    "RBLD": "Rebuild",
    "SBY": "Standby",
    "OSY": "Out of sync",
}


class SasIrcuCollector(BaseCollector):
    """Drives behind LSI SAS HBAs and expanders

    SATA drives are reported with only the last 8 characters of their
    serial number; the registry resolves those through the short serial.
    """

    name = "sas_ircu"
    commands = ("sas3ircu", "sas2ircu")

    def collect(self, registry: DriveRegistry) -> None:
        """Merge slot, state and identity facts keyed by serial number"""
        self.logger.info(f"Getting {self.cmd} drive information")

        list_output = self._execute_command([self.cmd, "LIST"])
        controller_ids = self._extract_controller_ids(list_output)
        self.logger.debug(f"Found controller IDs: {controller_ids}")

        for controller_id in controller_ids:
            display_output = self._execute_command([self.cmd, controller_id, "DISPLAY"])
            for facts in self.parse_display(display_output, controller_id):
                serial = facts.pop("serial")
                if not registry.observe(serial, Keyspace.SERIAL, facts, create=False):
                    self.logger.debug(f"{self.cmd} drive {serial} is not visible to the OS")

    def _extract_controller_ids(self, output: str) -> List[str]:
        """Extract controller IDs from LIST command output"""
        controller_ids = []

        for line in output.splitlines():
            # Look for lines starting with a number
            if re.match(r'^\s*\d+\s+\S', line):
                controller_ids.append(line.strip().split()[0])

        return controller_ids

    def parse_display(self, output: str, controller_id: str) -> List[Dict]:
        """Parse DISPLAY command output into one facts dict per drive"""
        drives = []
        lines = output.splitlines()

        for i, line in enumerate(lines):
            # Look for the start of a disk entry
            if "Device is a Hard disk" in line:
                facts = self._parse_disk_entry(lines, i + 1, controller_id)
                if facts:
                    drives.append(facts)
                    self.logger.debug(f"Found drive: {facts}")

        return drives

    def _parse_disk_entry(self, lines: List[str], start_idx: int, controller_id: str) -> Optional[Dict]:
        """Parse a single disk entry from display output"""
        values: Dict[str, str] = {}

        j = start_idx
        while j < len(lines) and "Device is a" not in lines[j] and not lines[j].startswith("----"):
            if ":" in lines[j]:
                label, _, value = lines[j].partition(":")
                values[label.strip()] = value.strip()
            j += 1

        serial = values.get("Serial No", "")
        enclosure = values.get("Enclosure #", "")
        slot = values.get("Slot #", "")
        if not serial or not enclosure.isdigit() or not slot.isdigit():
            return None

        manufacturer, model = split_manufacturer(values.get("Model Number", ""), values.get("Manufacturer", ""))
        interface, _, medium = values.get("Drive Type", "").partition("_")

        return {
            "serial": serial,
            "location": Location(slot=slot, enclosure=enclosure, controller=controller_id,
                                 source=self.name),
            "state": self._state(values.get("State", "")),
            "manufacturer": manufacturer,
            "model": model,
            "firmware": values.get("Firmware Revision", ""),
            "alias": wwn_alias(values.get("GUID", "")),
            "media": MediaType.classify(interface, medium.upper() != "SSD") if interface else "",
            "size": self._size(values.get("Size (in MB)/(in sectors)", "")),
        }

    @staticmethod
    def _state(text: str) -> str:
        match = re.search(r"\((\w+)\)", text)
        if match and match.group(1) in STATE_NAMES:
            return STATE_NAMES[match.group(1)]
        return text.split("(")[0].strip()

    @staticmethod
    def _size(text: str) -> int:
        _, _, sectors = text.partition("/")
        return int(sectors) * 512 if sectors.strip().isdigit() else 0
