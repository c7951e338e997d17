"""Block device enumeration with lsblk"""

from typing import Dict, Iterator, List, Optional, Tuple

from .base import BaseCollector
from .normalize import split_manufacturer, wwn_alias
from .smart import SmartProbe
from ..models import MediaType, PLACEHOLDER
from ..registry import DriveRegistry, Keyspace

LSBLK_COLUMNS = "NAME,TYPE,SIZE,TRAN,ROTA,SERIAL,WWN,MODEL,VENDOR,REV,PTTYPE,FSTYPE,MOUNTPOINT"

# Transport to bus of the reserved enclosure
TRANSPORT_BUS = {"sata": "SATA", "ata": "SATA", "nvme": "NVME", "usb": "USB"}

# (offset, marker, flag) of boot loader code in the first sector
BOOT_SIGNATURES = [
    (0x180, b"GRUB", "grub"),
    (0x006, b"LILO", "lilo"),
    (0x003, b"SYSLINUX", "syslinux"),
    (0x003, b"ISOLINUX", "isolinux"),
    (0x163, b"Invalid partition table", "windows"),
]

SKIPPED_PREFIXES = ("zram", "ram", "loop", "nbd")


def boot_loader_flags(sector: bytes) -> List[str]:
    """Boot loaders whose signature is present in a master boot record"""
    if len(sector) < 512 or sector[510:512] != b"\x55\xaa":
        return []
    return [flag for offset, marker, flag in BOOT_SIGNATURES
            if sector[offset:offset + len(marker)] == marker]


class BlockDeviceCollector(BaseCollector):
    """Establishes the canonical device node of every drive the OS sees"""

    name = "lsblk"
    commands = ("lsblk",)

    def __init__(self, smart: Optional[SmartProbe] = None, logger=None, read_boot_sector: bool = True):
        """Initialize BlockDeviceCollector

        Args:
            smart: SMART probe run for every drive found
            logger: Logger instance
            read_boot_sector: Look for boot loader signatures on the drives
        """
        super().__init__(logger)
        self.smart = smart
        self.read_boot_sector = read_boot_sector

    def collect(self, registry: DriveRegistry) -> None:
        """Merge block device facts, then SMART facts, into the registry"""
        self.logger.info("Getting system block device information")

        output = self._execute_command([self.cmd, "-J", "-b", "-o", LSBLK_COLUMNS])
        data = self._parse_json_output(output, "Failed to parse lsblk JSON output")

        for name, facts, bus in self.parse(data):
            if self.read_boot_sector:
                flags = boot_loader_flags(self._read_first_sector(f"/dev/{name}"))
                if flags:
                    table = [facts["boot"]] if facts["boot"] != PLACEHOLDER else []
                    facts["boot"] = "+".join(table + flags)

            canonical = registry.observe(name, Keyspace.DEVICE, facts)
            if canonical is None:
                continue
            if bus:
                registry.assign_bus(canonical, bus)

            if self.smart:
                self._merge_smart(registry, canonical, name)

    def _merge_smart(self, registry: DriveRegistry, canonical: str, name: str) -> None:
        report = self.smart.probe(canonical, f"/dev/{name}")
        if report is None:
            return
        facts = dict(report.facts)
        if report.interface:
            facts["media"] = MediaType.classify(report.interface, report.rotational, facts.get("model", ""))
        canonical = registry.update(canonical, facts) or canonical
        if "M.2" in report.form_factor:
            registry.assign_bus(canonical, "M2")

    def parse(self, data: Dict) -> Iterator[Tuple[str, Dict, str]]:
        """Yield (device name, facts, bus) for every drive in lsblk JSON output"""
        for device in data.get("blockdevices", []):
            name = device.get("name", "")
            dev_type = device.get("type", "")
            if not name or dev_type not in ("disk", "rom") or name.startswith(SKIPPED_PREFIXES):
                continue

            transport = (device.get("tran") or "").lower()
            manufacturer, model = split_manufacturer(device.get("model") or "", device.get("vendor") or "")

            if dev_type == "rom":
                media = MediaType.DVD
            else:
                media = MediaType.classify(transport, self._flag(device.get("rota")), model)

            facts = {
                "size": self._int(device.get("size")),
                "media": media,
                "boot": device.get("pttype") or PLACEHOLDER,
                "usage": self.usage(device),
                "manufacturer": manufacturer,
                "model": model,
                "firmware": device.get("rev") or "",
                "serial": device.get("serial") or "",
                "alias": wwn_alias(device.get("wwn") or ""),
            }
            bus = TRANSPORT_BUS.get(transport, "") if dev_type == "disk" else ""
            yield name, facts, bus

    @classmethod
    def usage(cls, device: Dict) -> str:
        """Usage classification: a mountpoint, else a filesystem signature, else unused"""
        mountpoints = list(cls._walk(device, "mountpoint"))
        if mountpoints:
            return "/" if "/" in mountpoints else mountpoints[0]
        fstypes = list(cls._walk(device, "fstype"))
        if fstypes:
            return fstypes[0]
        if device.get("children"):
            return "partitioned"
        return PLACEHOLDER

    @classmethod
    def _walk(cls, device: Dict, column: str) -> Iterator[str]:
        values = device.get(column + "s") or [device.get(column)]
        for value in values:
            if value:
                yield value
        for child in device.get("children") or []:
            yield from cls._walk(child, column)

    @staticmethod
    def _flag(value) -> Optional[bool]:
        if value is None:
            return None
        if isinstance(value, bool):
            return value
        return str(value).strip() in ("1", "true")

    @staticmethod
    def _int(value) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    def _read_first_sector(self, path: str) -> bytes:
        try:
            with open(path, "rb") as f:
                return f.read(512)
        except OSError as e:
            self.logger.debug(f"Cannot read boot sector of {path}: {e}")
            return b""
