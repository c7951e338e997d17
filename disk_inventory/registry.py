"""Drive registry and identity resolution

Every external tool names a drive differently: lsblk by device node, HBA and
RAID tools by serial number or by a controller assigned drive id, smartctl by
WWN/EUI alias. The registry folds all of these observations into one
DriveRecord per physical drive, keyed by the OS device node whenever one is
known.

Field merging is driven by FIELD_POLICY rather than by the collectors, so a
collector only reports what it saw and never decides what wins.
"""

import dataclasses
import logging
from enum import Enum
from typing import Dict, Iterator, List, Optional

from .models import (SHORT_SERIAL_LENGTH, BayAssignment, DriveRecord, Location,
                     MediaType, is_unset, qualify_media, short_serial)


class Keyspace(Enum):
    """Identifier domains used by the external tools"""

    DEVICE = "device"
    SERIAL = "serial"
    ALIAS = "alias"
    DRIVE_ID = "drive_id"


class MergePolicy(Enum):
    """How a later observation of a field combines with the current value"""

    FILL = "fill-if-absent"
    LATEST = "latest-write-wins"
    LOCATION = "fill-if-absent, explicit refinement"
    CLAIM = "first claim wins"


FIELD_POLICY: Dict[str, MergePolicy] = {
    "size": MergePolicy.FILL,
    "media": MergePolicy.FILL,
    "boot": MergePolicy.FILL,
    "usage": MergePolicy.FILL,
    "manufacturer": MergePolicy.FILL,
    "model": MergePolicy.FILL,
    "firmware": MergePolicy.FILL,
    "serial": MergePolicy.FILL,
    "serial_short": MergePolicy.FILL,
    "alias": MergePolicy.FILL,
    "smart_driver": MergePolicy.FILL,
    "drive_id": MergePolicy.FILL,
    "location": MergePolicy.LOCATION,
    "state": MergePolicy.LATEST,
    "health": MergePolicy.LATEST,
    "defects": MergePolicy.LATEST,
    "wear": MergePolicy.LATEST,
    "array": MergePolicy.CLAIM,
}

# Generic bus tags that later evidence may refine, and what they may become
BUS_REFINEMENTS = {"SATA": ("USB", "M2")}

BUS_QUALIFIERS = {"USB": MediaType.USB, "M2": MediaType.M2}


def merge_field(record: DriveRecord, name: str, value,
                logger: Optional[logging.Logger] = None) -> bool:
    """Merge one field value into a record according to FIELD_POLICY

    Returns:
        bool: True if the record changed
    """
    try:
        policy = FIELD_POLICY[name]
    except KeyError:
        raise ValueError(f"Unknown drive field: {name}")

    if is_unset(value):
        return False
    if isinstance(value, str):
        value = value.strip()
    if name == "location" and isinstance(value, str):
        value = Location.parse(value)
        if value is None:
            return False

    current = getattr(record, name)

    if policy is MergePolicy.LATEST:
        if current == value:
            return False
        setattr(record, name, value)
        return True

    if policy is MergePolicy.CLAIM and not is_unset(current) and current != value:
        (logger or logging.getLogger(__name__)).debug(
            f"Dropping claim of {record.id} by {value}, already member of {current}")
        return False

    if not is_unset(current):
        return False

    setattr(record, name, value)
    if name == "serial" and is_unset(record.serial_short):
        record.serial_short = short_serial(value)
    return True


class IdentityResolver:
    """Cross-reference between the identifier keyspaces"""

    def __init__(self):
        self.serial_to_id: Dict[str, str] = {}
        self.short_to_id: Dict[str, Optional[str]] = {}  # None once two drives share it
        self.id_to_serial: Dict[str, str] = {}
        self.alias_to_id: Dict[str, str] = {}
        self.drive_id_to_id: Dict[str, str] = {}
        self.node_to_id: Dict[str, str] = {}     # Secondary nodes of multipath drives

    def lookup_serial(self, serial: Optional[str], truncated: bool = False) -> Optional[str]:
        """Canonical id of a serial number

        Args:
            serial: Serial number as reported
            truncated: The serial may be the short form, match it against
                the last characters of known serials
        """
        if is_unset(serial):
            return None
        serial = serial.strip()
        canonical = self.serial_to_id.get(serial)
        if canonical is None and truncated and len(serial) <= SHORT_SERIAL_LENGTH:
            canonical = self.short_to_id.get(serial)
        return canonical

    def lookup_alias(self, alias: Optional[str]) -> Optional[str]:
        if is_unset(alias):
            return None
        return self.alias_to_id.get(alias.strip())

    def resolve(self, key: str, keyspace: Keyspace, facts: dict, known) -> Optional[str]:
        """Resolve an identifier to a canonical id, None if it is unknown

        The identifier's own keyspace is consulted first, then any serial,
        alias or drive id carried along in the facts. Only a serial given as
        the identifier itself is matched in its short form; serials carried
        in the facts must match in full.
        """
        if keyspace is Keyspace.DEVICE:
            canonical = self.node_to_id.get(key) or (key if key in known else None)
        elif keyspace is Keyspace.SERIAL:
            canonical = self.lookup_serial(key, truncated=True)
        elif keyspace is Keyspace.ALIAS:
            canonical = self.lookup_alias(key)
        else:
            canonical = self.drive_id_to_id.get(key)

        if canonical is None:
            canonical = self.lookup_serial(facts.get("serial"))
        if canonical is None:
            canonical = self.lookup_alias(facts.get("alias"))
        if canonical is None and not is_unset(facts.get("drive_id")):
            canonical = self.drive_id_to_id.get(facts["drive_id"])
        return canonical

    def link(self, record: DriveRecord) -> List[str]:
        """Record the identifiers of a drive

        Returns:
            List[str]: canonical ids of other records sharing an identifier
        """
        conflicts = []

        def bind(table: Dict[str, str], key: str) -> None:
            other = table.setdefault(key, record.id)
            if other != record.id and other not in conflicts:
                conflicts.append(other)

        if not is_unset(record.serial):
            bind(self.serial_to_id, record.serial)
            self.id_to_serial[record.id] = record.serial
            self._bind_short(record)
        if not is_unset(record.alias):
            bind(self.alias_to_id, record.alias)
        if not is_unset(record.drive_id):
            bind(self.drive_id_to_id, record.drive_id)

        return conflicts

    def _bind_short(self, record: DriveRecord) -> None:
        # A short serial only ever locates a drive, it never proves two records are one
        short = record.serial_short
        if is_unset(short):
            return
        other = self.short_to_id.setdefault(short, record.id)
        if other is not None and other != record.id and self.id_to_serial.get(other) != record.serial:
            self.short_to_id[short] = None

    def repoint(self, old: str, new: str) -> None:
        """Move every reference of a folded record to its survivor"""
        for table in (self.serial_to_id, self.short_to_id, self.alias_to_id,
                      self.drive_id_to_id, self.node_to_id):
            for key, value in table.items():
                if value == old:
                    table[key] = new
        self.id_to_serial.pop(old, None)


class DriveRegistry:
    """Authoritative mapping from canonical id to DriveRecord"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.records: Dict[str, DriveRecord] = {}
        self.resolver = IdentityResolver()
        self.bays = BayAssignment()
        self._sequence = 0

    def __iter__(self) -> Iterator[DriveRecord]:
        return iter(self.records.values())

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, drive: str) -> bool:
        return drive in self.records

    def __getitem__(self, drive: str) -> DriveRecord:
        return self.records[drive]

    @staticmethod
    def normalize(key: str, keyspace: Keyspace) -> str:
        key = (key or "").strip()
        if keyspace is Keyspace.DEVICE:
            key = key.replace("/dev/", "", 1) if key.startswith("/dev/") else key
        elif keyspace is Keyspace.ALIAS:
            key = key.rsplit("/", 1)[-1]
        return key

    def find(self, key: str) -> Optional[DriveRecord]:
        """Look up a record by any identifier the operator may type"""
        for keyspace in (Keyspace.DEVICE, Keyspace.SERIAL, Keyspace.ALIAS, Keyspace.DRIVE_ID):
            canonical = self.resolver.resolve(self.normalize(key, keyspace), keyspace, {}, self.records)
            if canonical in self.records:
                return self.records[canonical]
        return None

    def observe(self, key: str, keyspace: Keyspace, facts: Optional[dict] = None,
                create: bool = True) -> Optional[str]:
        """Attribute facts reported under some identifier to its drive

        Args:
            key: Identifier as reported by the tool
            keyspace: Keyspace the identifier belongs to
            facts: Field name to value mapping, unset values are ignored
            create: Create a record if the identifier cannot be resolved

        Returns:
            The canonical id the facts were merged into, None if dropped
        """
        facts = dict(facts or {})
        key = self.normalize(key, keyspace)
        if not key:
            return None

        canonical = self.resolver.resolve(key, keyspace, facts, self.records)

        if canonical is None:
            if not create:
                self.logger.debug(f"Dropping facts for unknown {keyspace.value} {key}")
                return None
            canonical = self._create(key, provisional=keyspace is not Keyspace.DEVICE).id
        elif keyspace is Keyspace.DEVICE and canonical != key and key not in self.resolver.node_to_id:
            if self.records[canonical].provisional:
                # First sighting of the device node of a drive so far only known by serial
                canonical = self._create(key, provisional=False).id
            else:
                self.logger.info(f"{key} is another path to {canonical}")
                self.resolver.node_to_id[key] = canonical

        record = self.records[canonical]
        for name, value in facts.items():
            if name == "location":
                self.set_location(record, value)
            else:
                merge_field(record, name, value, self.logger)

        return self._link(record).id

    def update(self, drive: str, facts: dict) -> Optional[str]:
        """Merge facts into a drive already known by its canonical id"""
        return self.observe(drive, Keyspace.DEVICE, facts, create=False)

    def set_location(self, record: DriveRecord, location) -> bool:
        """Fill the location of a record and its bay assignment"""
        if isinstance(location, str):
            location = Location.parse(location)
        if location is None or record.location is not None:
            return False
        owner = self.bays.get(location.key)
        if owner is not None and owner != record.id:
            self.logger.warning(f"Location {location} reported for both {owner} and {record.id}")
            return False
        record.location = location
        self.bays.assign(location, record.id)
        return True

    def assign_bus(self, drive: str, bus: str) -> Optional[Location]:
        """Place a bus attached drive into the reserved enclosure

        A drive without a location gets the next slot of the bus. A drive on a
        generic bus is moved when more specific evidence arrives (SATA to USB
        or M2); any other location is left alone.
        """
        record = self.records.get(drive)
        if record is None:
            return None

        current = record.location
        if current is not None:
            if not (current.is_bus and bus in BUS_REFINEMENTS.get(current.bus, ())):
                return current
            self.logger.debug(f"Refining location of {drive} from {current.bus} to {bus}")
            self.bays.release(current)

        location = self.bays.next_bus_slot(bus)
        record.location = location
        self.bays.assign(location, record.id)
        if bus in BUS_QUALIFIERS:
            record.media = qualify_media(record.media, BUS_QUALIFIERS[bus])
        return location

    def _create(self, canonical: str, provisional: bool) -> DriveRecord:
        self._sequence += 1
        record = DriveRecord(id=canonical, provisional=provisional, seen=self._sequence)
        self.records[canonical] = record
        self.logger.debug(f"New drive {canonical}{' (provisional)' if provisional else ''}")
        return record

    def _link(self, record: DriveRecord) -> DriveRecord:
        for other in self.resolver.link(record):
            if other in self.records and other != record.id:
                record = self._unify(record, self.records[other])
        return record

    def _unify(self, a: DriveRecord, b: DriveRecord) -> DriveRecord:
        """Fold two records describing the same drive into one"""
        first, second = sorted((a, b), key=lambda r: r.seen)
        if a.provisional != b.provisional:
            keep, drop = (b, a) if a.provisional else (a, b)
        else:
            keep, drop = first, second

        merged = dataclasses.replace(first)
        for name in FIELD_POLICY:
            if name != "location":
                merge_field(merged, name, getattr(second, name), self.logger)
        if merged.location is None:
            merged.location = second.location
        merged.id = keep.id
        merged.provisional = keep.provisional

        self.logger.debug(f"Merging {drop.id} into {keep.id}")

        for record in (a, b):
            if record.location is not None and record.location != merged.location:
                if self.bays.get(record.location.key) == record.id:
                    self.bays.release(record.location)
        self.bays.rename(drop.id, keep.id)
        if merged.location is not None:
            self.bays.assign(merged.location, keep.id)

        del self.records[drop.id]
        self.records[keep.id] = merged

        self.resolver.repoint(drop.id, keep.id)
        if not drop.provisional:
            self.resolver.node_to_id[drop.id] = keep.id
        self.resolver.link(merged)
        return merged
