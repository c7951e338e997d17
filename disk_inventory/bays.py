"""Overlay of drive records onto configured enclosure grids"""

from typing import Dict, List, Optional

from .models import (BUS_ENCLOSURE, BUSES, BayAssignment, BaySlot, DriveRecord,
                     Enclosure, Location)

CELL_WIDTH = 24


def map_enclosure(enclosure: Enclosure, bays: BayAssignment,
                  records: Dict[str, DriveRecord]) -> List[List[BaySlot]]:
    """Bay status for every slot of an enclosure, in configured row/column order

    Only meaningful once every collector has run, since bays are assigned as
    collectors discover drives.
    """
    grid = []
    for row in enclosure.rows:
        slots = []
        for token in row:
            if not enclosure.is_slot_token(token):
                slots.append(BaySlot(label=token, status=BaySlot.LAYOUT))
                continue
            drive = bays.get(enclosure.slot_key(token))
            if drive is None or drive not in records:
                slots.append(BaySlot(label=token, status=BaySlot.EMPTY))
            else:
                slots.append(BaySlot(label=token, status=BaySlot.DRIVE, drive=records[drive]))
        grid.append(slots)
    return grid


def bus_enclosure(bays: BayAssignment) -> Optional[Enclosure]:
    """Reserved enclosure built from the bus slots handed out during the run

    One row per bus, used when the configuration has no grid for it.
    """
    rows = []
    for bus in BUSES:
        keys = [k for k in bays.keys_for(BUS_ENCLOSURE) if Location.parse(k).bus == bus]
        if keys:
            rows.append(sorted(keys, key=lambda k: int(k.split(":")[1])))
    if not rows:
        return None
    return Enclosure(name=BUS_ENCLOSURE, rows=rows)


def enclosures_to_render(configured: Dict[str, Enclosure], bays: BayAssignment) -> List[Enclosure]:
    """Configured enclosures, plus the reserved one when it is not configured"""
    enclosures = list(configured.values())
    if BUS_ENCLOSURE not in configured:
        internal = bus_enclosure(bays)
        if internal is not None:
            enclosures.append(internal)
    return enclosures


def format_size(size: int) -> str:
    """Human readable decimal size, e.g. 4.0T"""
    if not size:
        return "-"
    value = float(size)
    for unit in ("B", "K", "M", "G", "T", "P"):
        if value < 1000 or unit == "P":
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1000
    return "-"


def describe_slot(slot: BaySlot) -> str:
    """Text of one bay cell"""
    if slot.status == BaySlot.LAYOUT:
        return ""
    if slot.status == BaySlot.EMPTY:
        return f"{slot.label}: empty"
    drive = slot.drive
    return f"{slot.label}: {drive.id} {drive.media} {format_size(drive.size)}"


def render_enclosure(enclosure: Enclosure, grid: List[List[BaySlot]]) -> List[str]:
    """Text lines of the bay view of one enclosure

    Args:
        enclosure: Enclosure the grid was mapped from
        grid: Output of map_enclosure for that enclosure

    Returns:
        Title line followed by one line per grid row
    """
    filled = sum(1 for row in grid for slot in row if slot.status == BaySlot.DRIVE)
    total = sum(1 for row in grid for slot in row if slot.status != BaySlot.LAYOUT)
    lines = [f"Enclosure {enclosure.name} ({filled}/{total} bays used)"]
    for row in grid:
        cells = [describe_slot(slot).ljust(CELL_WIDTH) for slot in row]
        lines.append("  ".join(cells).rstrip())
    return lines
