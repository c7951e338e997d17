"""Storcli/Storcli2 RAID controller collector"""

from typing import Dict, List, Optional, Tuple
import re

from .base import BaseCollector
from .normalize import parse_size, split_manufacturer, wwn_alias
from .smart import SmartProbe
from ..models import Location, MediaType
from ..registry import DriveRegistry, Keyspace

# Controller state abbreviations, spelled out where the abbreviation is opaque
STATE_NAMES = {
    "UGood": "Ready",
    "JBOD": "Online",
    "Rbld": "Rebuild",
    "UBad": "Failed",
    "Offln": "Offline",
    "GHS": "Spare",
    "DHS": "Spare",
    "Cpybck": "Copyback",
    "Msng": "Missing",
}


def controller_drive_id(controller: str, did) -> str:
    """Drive id in the controller keyspace, unique across controllers"""
    return f"c{controller}d{did}"


class StorcliCollector(BaseCollector):
    """Drives behind LSI/Broadcom MegaRAID controllers

    The per-drive view is read first: it is the only place that ties a
    controller drive id to a serial number. The array view only names drives
    by controller drive id.
    """

    name = "storcli"
    commands = ("storcli2", "storcli64", "storcli", "perccli64", "perccli")

    def __init__(self, smart: Optional[SmartProbe] = None, logger=None):
        """Initialize StorcliCollector

        Args:
            smart: SMART probe used for drives found on the controller
            logger: Logger instance
        """
        super().__init__(logger)
        self.smart = smart

    def collect(self, registry: DriveRegistry) -> None:
        """Merge per-drive and per-array controller facts"""
        self.logger.info(f"Getting {self.cmd} drive information")

        output = self._execute_command([self.cmd, "/call/eall/sall", "show", "all", "J"])
        drives = self.parse_drives(self._parse_json_output(output, f"Failed to parse {self.cmd} drive output"))
        self.logger.debug(f"Found {len(drives)} {self.cmd} drives")

        for controller, did, facts in drives:
            key = facts.get("serial") or controller_drive_id(controller, did)
            keyspace = Keyspace.SERIAL if facts.get("serial") else Keyspace.DRIVE_ID
            canonical = registry.observe(key, keyspace, facts)
            if canonical and self.smart and controller:
                report = self.smart.probe(canonical, f"/dev/bus/{controller}", drivers=[f"megaraid,{did}"])
                if report:
                    registry.update(canonical, report.facts)

        output = self._execute_command([self.cmd, "/call/vall", "show", "all", "J"])
        members = self.parse_arrays(self._parse_json_output(output, f"Failed to parse {self.cmd} array output"))
        for drive_id, array in members:
            registry.observe(drive_id, Keyspace.DRIVE_ID, {"array": array}, create=False)

    def parse_drives(self, json_data: Dict) -> List[Tuple[str, str, Dict]]:
        """Parse the per-drive view

        Returns:
            List of (controller number, drive id, facts) tuples
        """
        drives = []
        for controller in json_data.get("Controllers", []):
            controller_num = str(controller.get("Command Status", {}).get("Controller", ""))
            response = controller.get("Response Data", {})

            # storcli2 format
            for drive_entry in response.get("Drives List", []):
                info = drive_entry.get("Drive Information", {})
                detail = drive_entry.get("Drive Detailed Information", {})
                entry = self._drive_facts(controller_num, info, {
                    "SN": detail.get("Serial Number", ""),
                    "Manufacturer Id": detail.get("Vendor", ""),
                    "WWN": detail.get("WWN", ""),
                    "Model Number": detail.get("Model", ""),
                    "Firmware Revision": detail.get("Firmware Revision", ""),
                }, {})
                if entry:
                    drives.append(entry)

            # storcli format
            drive_keys = [k for k in response.keys()
                          if k.startswith("Drive /c") and "Detailed Information" not in k]
            for drive_key in drive_keys:
                try:
                    info = response[drive_key][0]
                except (IndexError, KeyError, TypeError):
                    self.logger.debug(f"No drive information for {drive_key}")
                    continue

                ctrl = controller_num
                if not ctrl:
                    match = re.search(r"/c(\d+)", drive_key)
                    ctrl = match.group(1) if match else ""

                detailed = response.get(f"{drive_key} - Detailed Information", {})
                attributes = detailed.get(f"{drive_key} Device attributes", {})
                state = detailed.get(f"{drive_key} State", {})
                entry = self._drive_facts(ctrl, info, attributes, state)
                if entry:
                    drives.append(entry)

        return drives

    def _drive_facts(self, controller_num: str, info: Dict, attributes: Dict,
                     state: Dict) -> Optional[Tuple[str, str, Dict]]:
        eid_slt = str(info.get("EID:Slt", ""))
        if ":" not in eid_slt:
            return None
        enclosure, slot = [part.strip() for part in eid_slt.split(":", 1)]
        did = info.get("DID", info.get("PID", ""))

        model = (info.get("Model") or attributes.get("Model Number") or "").strip()
        manufacturer, model = split_manufacturer(model, attributes.get("Manufacturer Id", ""))

        raw_state = str(info.get("State", "")).strip()
        size = self._raw_size(attributes.get("Raw size", "")) or parse_size(str(info.get("Size", "")))

        facts = {
            "serial": str(attributes.get("SN", "")).strip(),
            "alias": wwn_alias(str(attributes.get("WWN", ""))),
            "manufacturer": manufacturer,
            "model": model,
            "firmware": str(attributes.get("Firmware Revision", "")).strip(),
            "size": size,
            "media": MediaType.classify(info.get("Intf", ""), str(info.get("Med", "")).upper() != "SSD"),
            "location": Location(slot=slot, enclosure=enclosure, controller=controller_num,
                                 source=self.name),
            "state": STATE_NAMES.get(raw_state, raw_state),
            "drive_id": controller_drive_id(controller_num, did) if did != "" else "",
        }
        if "Predictive Failure Count" in state:
            facts["health"] = str(state["Predictive Failure Count"])
        if "Media Error Count" in state:
            facts["defects"] = str(state["Media Error Count"])

        return controller_num, str(did), facts

    @staticmethod
    def _raw_size(raw: str) -> int:
        match = re.search(r"\[0x([0-9a-fA-F]+) Sectors\]", raw or "")
        return int(match.group(1), 16) * 512 if match else 0

    def parse_arrays(self, json_data: Dict) -> List[Tuple[str, str]]:
        """Parse the array view into (controller drive id, array name) pairs"""
        members = []
        for controller in json_data.get("Controllers", []):
            controller_num = str(controller.get("Command Status", {}).get("Controller", ""))
            response = controller.get("Response Data", {})

            for key, value in response.items():
                match = re.match(r"^PDs for VD (\d+)$", key)
                if not match or not isinstance(value, list):
                    continue
                array = f"c{controller_num}v{match.group(1)}"
                for pd in value:
                    did = pd.get("DID", pd.get("PID", ""))
                    if did != "":
                        members.append((controller_drive_id(controller_num, did), array))

        return members
