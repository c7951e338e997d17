"""Data models for the drive inventory"""

import re
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional

PLACEHOLDER = "-"
NO_ARRAY = "none"
SHORT_SERIAL_LENGTH = 8

# Reserved enclosure holding drives that are only reachable through a bus
BUS_ENCLOSURE = "internal"
BUSES = ("SATA", "NVME", "M2", "USB")


def is_unset(value) -> bool:
    """True for values that carry no information"""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() in ("", PLACEHOLDER, NO_ARRAY, "null", "Unknown", "N/A")
    if isinstance(value, int) and not isinstance(value, bool):
        return value == 0
    return False


class MediaType:
    """Media/interface type tags"""

    SATA_HDD = "SATA-HDD"
    SATA_SSD = "SATA-SSD"
    SAS_HDD = "SAS-HDD"
    SAS_SSD = "SAS-SSD"
    NVME_SSD = "NVME-SSD"
    NVME_OPTANE = "NVME-Optane"
    ISCSI = "iSCSI"
    DVD = "DVD"

    USB = "USB"
    M2 = "M.2"

    @classmethod
    def classify(cls, interface: str, rotational: Optional[bool], model: str = "") -> str:
        """Map an interface name and rotational flag to a media type"""
        interface = (interface or "").lower()
        if interface == "nvme":
            return cls.NVME_OPTANE if "optane" in (model or "").lower() else cls.NVME_SSD
        if interface == "iscsi":
            return cls.ISCSI
        if interface == "sas":
            return cls.SAS_SSD if rotational is False else cls.SAS_HDD
        if interface in ("sata", "ata", "usb"):
            return cls.SATA_SSD if rotational is False else cls.SATA_HDD
        return PLACEHOLDER


def qualify_media(media: str, qualifier: str) -> str:
    """Append a USB/M.2 qualifier to a media type once"""
    if is_unset(media) or media.endswith("-" + qualifier):
        return media
    return f"{media}-{qualifier}"


_LOCATION_RE = re.compile(r"^(?:(?P<first>[^:]+):)?(?P<second>[^:]+):(?P<slot>\d+)$")


@dataclass(frozen=True)
class Location:
    """Compound location key of a drive"""

    slot: str
    enclosure: str = ""
    controller: str = ""
    bus: str = ""
    source: str = field(default="", compare=False)   # Collector that reported it

    @classmethod
    def parse(cls, key: str) -> Optional["Location"]:
        """Parse one of the compound key forms, None if the key is malformed"""
        if not key:
            return None
        match = _LOCATION_RE.match(key.strip())
        if not match:
            return None
        first, second, slot = match.group("first"), match.group("second"), match.group("slot")
        if first is None and second.upper() in BUSES:
            return cls(slot=slot, bus=second.upper())
        if first is None:
            return cls(slot=slot, enclosure=second)
        return cls(slot=slot, enclosure=second, controller=first)

    @classmethod
    def on_bus(cls, bus: str, index: int) -> "Location":
        return cls(slot=str(index), bus=bus)

    @property
    def is_bus(self) -> bool:
        return bool(self.bus)

    @property
    def is_addressable(self) -> bool:
        """Whether an enclosure tool can address this location"""
        return (not self.bus and self.controller.isdigit()
                and self.enclosure.isdigit() and self.slot.isdigit())

    @property
    def enclosure_key(self) -> str:
        if self.bus:
            return BUS_ENCLOSURE
        if self.controller:
            return f"{self.controller}:{self.enclosure}"
        return self.enclosure

    @property
    def key(self) -> str:
        if self.bus:
            return f"{self.bus}:{self.slot}"
        if self.controller:
            return f"{self.controller}:{self.enclosure}:{self.slot}"
        return f"{self.enclosure}:{self.slot}"

    def __str__(self) -> str:
        return self.key


@dataclass
class DriveRecord:
    """Merged facts about one physical drive"""

    id: str                                  # Canonical id (device node name)
    size: int = 0                            # Size in bytes
    media: str = PLACEHOLDER                 # Media/interface type
    boot: str = PLACEHOLDER                  # Partition table and boot loader flags
    usage: str = PLACEHOLDER                 # Mountpoint or filesystem signature
    array: str = NO_ARRAY                    # Logical array/group membership
    location: Optional[Location] = None
    manufacturer: str = PLACEHOLDER
    model: str = PLACEHOLDER
    firmware: str = PLACEHOLDER
    serial: str = PLACEHOLDER
    serial_short: str = PLACEHOLDER
    alias: str = PLACEHOLDER                 # by-id WWN/EUI token
    smart_driver: str = PLACEHOLDER
    state: str = PLACEHOLDER
    health: str = PLACEHOLDER
    defects: str = PLACEHOLDER
    wear: str = PLACEHOLDER
    drive_id: str = PLACEHOLDER              # Controller assigned drive id
    provisional: bool = False                # Id is not an OS device node
    seen: int = field(default=0, compare=False)

    def __post_init__(self):
        if not is_unset(self.serial) and is_unset(self.serial_short):
            self.serial_short = short_serial(self.serial)

    @property
    def location_key(self) -> str:
        return self.location.key if self.location else PLACEHOLDER

    def to_dict(self) -> dict:
        """Convert record to dictionary representation"""
        data = {f.name: getattr(self, f.name) for f in fields(self)
                if f.name not in ("seen", "provisional")}
        data["location"] = self.location_key
        return data


def short_serial(serial: str) -> str:
    """8-character short form some HBA tools report for SATA drives"""
    serial = (serial or "").strip()
    return serial[-SHORT_SERIAL_LENGTH:] if serial else PLACEHOLDER


_SLOT_TOKEN_RE = re.compile(r"^(?:[A-Za-z0-9.]+:)?\d+$")


@dataclass
class Enclosure:
    """Named physical slot grid loaded from configuration"""

    name: str
    rows: List[List[str]] = field(default_factory=list)

    @classmethod
    def from_text(cls, name: str, text: str) -> "Enclosure":
        rows = [line.split() for line in str(text).splitlines() if line.strip()]
        return cls(name=str(name), rows=rows)

    @staticmethod
    def is_slot_token(token: str) -> bool:
        """Numeric slot index, or a bus key such as NVME:0"""
        return bool(_SLOT_TOKEN_RE.match(token))

    def slot_key(self, token: str) -> str:
        """Location key a slot token refers to within this enclosure"""
        if ":" in token:
            return token.upper()
        return f"{self.name}:{token}"

    @property
    def slots(self) -> List[str]:
        return [t for row in self.rows for t in row if self.is_slot_token(t)]


class BayAssignment:
    """Location key to canonical id mapping, filled by collectors"""

    def __init__(self):
        self.assignments: Dict[str, str] = {}
        self._bus_counters: Dict[str, int] = {}

    def assign(self, location: Location, drive: str) -> None:
        self.assignments[location.key] = drive
        if location.is_bus and location.slot.isdigit():
            counter = self._bus_counters.get(location.bus, 0)
            self._bus_counters[location.bus] = max(counter, int(location.slot) + 1)

    def release(self, location: Location) -> None:
        self.assignments.pop(location.key, None)

    def rename(self, old: str, new: str) -> None:
        for key, drive in self.assignments.items():
            if drive == old:
                self.assignments[key] = new

    def next_bus_slot(self, bus: str) -> Location:
        """Next free slot of a bus, counters are never reused within a run"""
        index = self._bus_counters.get(bus, 0)
        self._bus_counters[bus] = index + 1
        return Location.on_bus(bus, index)

    def get(self, key: str) -> Optional[str]:
        return self.assignments.get(key)

    def keys_for(self, enclosure_key: str) -> List[str]:
        return [k for k in self.assignments
                if Location.parse(k) and Location.parse(k).enclosure_key == enclosure_key]

    def __contains__(self, key: str) -> bool:
        return key in self.assignments

    def __len__(self) -> int:
        return len(self.assignments)


@dataclass
class BaySlot:
    """One rendered bay of an enclosure grid"""

    label: str
    status: str                              # layout, empty or drive
    drive: Optional[DriveRecord] = None

    LAYOUT = "layout"
    EMPTY = "empty"
    DRIVE = "drive"
