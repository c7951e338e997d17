"""Inventory and bay view output"""

import hashlib
import json
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .bays import enclosures_to_render, format_size, map_enclosure, render_enclosure
from .health import is_okay
from .models import BayAssignment, BaySlot, DriveRecord, Enclosure, PLACEHOLDER, is_unset

# Header, record attribute
COLUMNS = [
    ("Drive", "id"),
    ("Size", "size"),
    ("Media", "media"),
    ("Boot", "boot"),
    ("Usage", "usage"),
    ("Array", "array"),
    ("Location", "location"),
    ("Manufacturer", "manufacturer"),
    ("Model", "model"),
    ("Firmware", "firmware"),
    ("Serial", "serial"),
    ("Alias", "alias"),
    ("State", "state"),
    ("Health", "health"),
    ("Defects", "defects"),
    ("Wear", "wear"),
]

FAILING_STYLE = "bold red"
MASKED_FIELDS = ("serial", "serial_short", "alias")


def inventory_rows(records: Iterable[DriveRecord], unused_only: bool = False) -> List[DriveRecord]:
    """Records in display order: by array, then location, then id

    Args:
        records: Drive records
        unused_only: Keep only drives without a detected usage
    """
    rows = [r for r in records if not unused_only or is_unset(r.usage)]
    return sorted(rows, key=lambda r: (r.array, r.location_key, r.id))


def mask_value(value: str) -> str:
    """Deterministic stand-in of the same length for a serial-like token"""
    if is_unset(value):
        return value
    digest = ""
    counter = 0
    while len(digest) < len(value):
        digest += hashlib.sha1(f"{counter}:{value}".encode()).hexdigest().upper()
        counter += 1
    return digest[:len(value)]


def mask_serials(record: DriveRecord) -> DriveRecord:
    """Copy of a record with serial numbers and aliases masked

    A provisional record is named by its serial, so its id is masked too.
    """
    masked = {name: mask_value(getattr(record, name)) for name in MASKED_FIELDS}
    if record.provisional:
        masked["id"] = mask_value(record.id)
    return replace(record, **masked)


def row_values(record: DriveRecord) -> List[str]:
    values = []
    for _, attr in COLUMNS:
        if attr == "size":
            values.append(format_size(record.size))
        elif attr == "location":
            values.append(record.location_key)
        else:
            value = getattr(record, attr)
            values.append(PLACEHOLDER if value is None or value == "" else str(value))
    return values


def print_table(records: Sequence[DriveRecord], colors: Dict[str, Optional[str]],
                known_bad: Iterable[str] = (), console: Optional[Console] = None) -> None:
    """Print the inventory table

    Failing drives are printed bold red, array names in their array color.
    """
    console = console or Console()
    known_bad = list(known_bad)

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    for header, _ in COLUMNS:
        table.add_column(header, no_wrap=True)

    array_index = [attr for _, attr in COLUMNS].index("array")
    for record in records:
        style = None if is_okay(record, known_bad) else FAILING_STYLE
        cells: List[Text] = [Text(value) for value in row_values(record)]
        color = colors.get(record.array)
        if color and style is None:
            cells[array_index].stylize(color)
        table.add_row(*cells, style=style)

    console.print(table)


def print_json(records: Sequence[DriveRecord], known_bad: Iterable[str] = (),
               console: Optional[Console] = None) -> None:
    """Print records as a JSON list, each with its health verdict"""
    console = console or Console()
    known_bad = list(known_bad)
    output = []
    for record in records:
        data = record.to_dict()
        data["okay"] = is_okay(record, known_bad)
        output.append(data)
    console.print_json(json.dumps(output))


def print_bays(enclosures: Dict[str, Enclosure], bays: BayAssignment,
               records: Dict[str, DriveRecord], colors: Dict[str, Optional[str]],
               known_bad: Iterable[str] = (), console: Optional[Console] = None) -> None:
    """Print the bay view of every configured enclosure"""
    console = console or Console()
    known_bad = list(known_bad)

    shown = enclosures_to_render(enclosures, bays)
    if not shown:
        console.print("No enclosures configured")
        return

    for enclosure in shown:
        grid = map_enclosure(enclosure, bays, records)
        lines = render_enclosure(enclosure, grid)
        console.print(Text(lines[0], style="bold"))
        for row, line in zip(grid, lines[1:]):
            text = Text(line)
            for slot in row:
                if slot.status != BaySlot.DRIVE:
                    continue
                style = colors.get(slot.drive.array)
                if not is_okay(slot.drive, known_bad):
                    style = FAILING_STYLE
                if style:
                    text.highlight_words([f"{slot.label}: {slot.drive.id} "], style=style)
            console.print(text)
        console.print()
