"""
Disk Inventory Tool

This module correlates what storage controllers, block device enumeration,
volume managers and pool managers report about local drives into one record
per physical drive, and maps those drives onto their physical bays.
"""

from .models import DriveRecord, Enclosure, Location
from .registry import DriveRegistry, Keyspace
from .cli import DiskInventory

__version__ = "1.0.0"
__all__ = ["DriveRecord", "Enclosure", "Location", "DriveRegistry", "Keyspace", "DiskInventory"]
