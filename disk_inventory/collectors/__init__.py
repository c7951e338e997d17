"""Collectors and the order they run in

The RAID controller collector must run before block device enumeration: it
is the only source tying controller drive ids to serial numbers. Every
collector that only reports device nodes needs lsblk to have established
them first.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .base import BaseCollector
from .ceph import CephCollector
from .lsblk import BlockDeviceCollector
from .lvm import LvmCollector
from .mdraid import MdRaidCollector
from .sas_ircu import SasIrcuCollector
from .smart import SmartProbe
from .storcli import StorcliCollector
from .zpool import ZpoolCollector
from ..registry import DriveRegistry

COLLECTORS = [
    StorcliCollector,
    BlockDeviceCollector,
    SasIrcuCollector,
    LvmCollector,
    MdRaidCollector,
    CephCollector,
    ZpoolCollector,
]

# collector -> collectors that must have run before it
DEPENDS_ON: Dict[str, Tuple[str, ...]] = {
    "lsblk": ("storcli",),
    "sas_ircu": ("lsblk",),
    "lvm": ("lsblk",),
    "mdraid": ("lsblk",),
    "ceph": ("lsblk",),
    "zpool": ("lsblk",),
}


def ordered(collectors: Sequence[BaseCollector]) -> List[BaseCollector]:
    """Order collectors so that every dependency runs first

    Collectors keep their given order where no dependency says otherwise.
    Dependencies on collectors that are not in the list are ignored.

    Raises:
        ValueError: If the dependencies are cyclic
    """
    pending = list(collectors)
    present = {c.name for c in pending}
    done = set()
    result = []

    while pending:
        for collector in pending:
            needs = [d for d in DEPENDS_ON.get(collector.name, ()) if d in present]
            if all(d in done for d in needs):
                break
        else:
            raise ValueError(f"Cyclic collector dependencies: {[c.name for c in pending]}")
        pending.remove(collector)
        result.append(collector)
        done.add(collector.name)

    return result


def build_collectors(smart: Optional[SmartProbe] = None,
                     logger: Optional[logging.Logger] = None) -> List[BaseCollector]:
    """Instantiate every collector, sharing one SMART probe"""
    collectors = []
    for cls in COLLECTORS:
        if cls in (StorcliCollector, BlockDeviceCollector):
            collectors.append(cls(smart=smart, logger=logger))
        else:
            collectors.append(cls(logger=logger))
    return collectors


def run_collectors(registry: DriveRegistry, collectors: Sequence[BaseCollector],
                   logger: Optional[logging.Logger] = None) -> DriveRegistry:
    """Run collectors one after another against the shared registry

    A collector whose tool is missing is skipped; one that fails is logged
    and contributes whatever it merged before failing.
    """
    logger = logger or logging.getLogger(__name__)

    for collector in ordered(collectors):
        if not collector.is_available():
            logger.debug(f"Skipping {collector.name}: tool not found")
            continue
        try:
            collector.collect(registry)
        except Exception as e:
            logger.warning(f"Collector {collector.name} failed: {e}")

    logger.debug(f"Registry holds {len(registry)} drives")
    return registry


__all__ = [
    "BaseCollector", "BlockDeviceCollector", "CephCollector", "LvmCollector",
    "MdRaidCollector", "SasIrcuCollector", "SmartProbe", "StorcliCollector",
    "ZpoolCollector", "COLLECTORS", "DEPENDS_ON", "ordered", "build_collectors",
    "run_collectors",
]
