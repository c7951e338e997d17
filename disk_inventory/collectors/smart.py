"""SMART data probing with smartctl

Not a collector of its own: the block device and RAID collectors call it
for every drive they find.
"""

import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

from ..models import PLACEHOLDER
from .base import run_command
from .normalize import parse_size, split_manufacturer, wwn_alias

DEFAULT_DRIVERS = ("auto", "sat", "scsi", "nvme")

# Bit 0: command line did not parse, bit 1: device open failed. Everything
# above that is a warning about the drive, the output is still usable.
FATAL_STATUS_MASK = 0x03

CACHE_HEADER = "# smartctl driver: "

WEAR_ATTRIBUTES = ("Wear_Leveling_Count", "Media_Wearout_Indicator",
                   "Percent_Lifetime_Remain", "SSD_Life_Left")


@dataclass
class SmartReport:
    """Parsed smartctl output"""

    driver: str
    facts: Dict[str, object] = field(default_factory=dict)
    interface: str = ""
    rotational: Optional[bool] = None
    form_factor: str = ""


class SmartProbe:
    """Runs smartctl against a drive, trying one driver hint after another"""

    def __init__(self, drivers: Optional[Sequence[str]] = None, cache_dir: Optional[str] = None,
                 use_cache: bool = False, logger: Optional[logging.Logger] = None):
        """Initialize the probe

        Args:
            drivers: Driver hints to try, in order
            cache_dir: Directory successful probes are written to
            use_cache: Replay cached output instead of running smartctl
            logger: Logger instance
        """
        self.logger = logger or logging.getLogger(__name__)
        self.drivers = tuple(drivers) if drivers else DEFAULT_DRIVERS
        self.cache_dir = os.path.expanduser(cache_dir) if cache_dir else None
        self.use_cache = use_cache
        self.cmd = "smartctl" if shutil.which("smartctl") else ""

    def probe(self, drive: str, device: str,
              drivers: Optional[Sequence[str]] = None) -> Optional[SmartReport]:
        """Probe one drive

        Args:
            drive: Canonical drive id, used as cache key
            device: Device node smartctl is pointed at
            drivers: Override of the driver hints to try

        Returns:
            SmartReport of the first driver hint that applied, None otherwise
        """
        cached = self._read_cache(drive)
        if cached is not None:
            driver, text = cached
            self.logger.debug(f"Using cached smartctl output for {drive}")
            return parse_smartctl(text, driver)

        if not self.cmd:
            return None

        for driver in drivers or self.drivers:
            returncode, text = run_command([self.cmd, "-a", "-d", driver, device], self.logger)
            if returncode is None or returncode & FATAL_STATUS_MASK:
                self.logger.debug(f"smartctl driver {driver} does not apply to {device} (status {returncode})")
                continue
            self._write_cache(drive, driver, text)
            return parse_smartctl(text, driver)

        self.logger.debug(f"No smartctl driver applies to {device}")
        return None

    def _cache_path(self, drive: str) -> Optional[str]:
        if not self.cache_dir:
            return None
        return os.path.join(self.cache_dir, "smartctl-{}.txt".format(re.sub(r"[^\w.:-]", "_", drive)))

    def _read_cache(self, drive: str):
        path = self._cache_path(drive)
        if not self.use_cache or not path or not os.path.exists(path):
            return None
        try:
            with open(path, "r") as f:
                text = f.read()
        except IOError as e:
            self.logger.warning(f"Error reading smartctl cache {path}: {e}")
            return None
        driver = PLACEHOLDER
        if text.startswith(CACHE_HEADER):
            header, _, text = text.partition("\n")
            driver = header[len(CACHE_HEADER):].strip()
        return driver, text

    def _write_cache(self, drive: str, driver: str, text: str) -> None:
        path = self._cache_path(drive)
        if not path:
            return
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            with open(path, "w") as f:
                f.write(f"{CACHE_HEADER}{driver}\n{text}")
        except IOError as e:
            self.logger.warning(f"Error writing smartctl cache {path}: {e}")


def _field(text: str, *labels: str) -> str:
    for label in labels:
        match = re.search(rf"^{re.escape(label)}:\s*(.+?)\s*$", text, re.MULTILINE)
        if match:
            return match.group(1)
    return ""


def _attribute(text: str, name: str):
    """(normalized value, raw value) of an ATA SMART attribute"""
    match = re.search(rf"^\s*\d+\s+{name}\s+\S+\s+(\d+)\s+\d+\s+\S+\s+\S+\s+\S+\s+\S+\s+(\d+)",
                      text, re.MULTILINE)
    if match:
        return int(match.group(1)), match.group(2)
    return None


def parse_smartctl(text: str, driver: str) -> SmartReport:
    """Parse the text of `smartctl -a`"""
    report = SmartReport(driver=driver)
    facts = report.facts
    facts["smart_driver"] = driver

    model = _field(text, "Device Model", "Model Number", "Product")
    vendor = _field(text, "Vendor")
    manufacturer, model = split_manufacturer(model, vendor)
    facts["manufacturer"] = manufacturer
    facts["model"] = model
    facts["serial"] = _field(text, "Serial Number", "Serial number")
    facts["firmware"] = _field(text, "Firmware Version", "Revision")
    facts["size"] = parse_size(_field(text, "User Capacity", "Total NVM Capacity",
                                      "Namespace 1 Size/Capacity"))

    wwn = _field(text, "LU WWN Device Id", "Logical Unit id")
    eui = _field(text, "Namespace 1 IEEE EUI-64")
    if wwn:
        facts["alias"] = wwn_alias(wwn)
    elif eui:
        facts["alias"] = wwn_alias("eui." + eui.replace(" ", ""))

    rotation = _field(text, "Rotation Rate")
    if rotation:
        report.rotational = "solid state" not in rotation.lower()
    report.form_factor = _field(text, "Form Factor")

    transport = _field(text, "Transport protocol")
    if driver == "nvme" or "NVMe Version" in text or "NVMe Log" in text:
        report.interface = "nvme"
    elif transport:
        report.interface = "sas" if "SAS" in transport.upper() else transport.lower()
    elif "SATA Version" in text or "ATA Version" in text:
        report.interface = "sata"

    verdict = _field(text, "SMART overall-health self-assessment test result", "SMART Health Status")
    if verdict:
        facts["health"] = verdict.split()[0].rstrip("!")

    defects = _field(text, "Elements in grown defect list")
    if defects:
        facts["defects"] = defects
    else:
        reallocated = _attribute(text, "Reallocated_Sector_Ct")
        if reallocated:
            facts["defects"] = reallocated[1]

    wear = _field(text, "Percentage Used", "Percentage used endurance indicator")
    if wear:
        facts["wear"] = wear if wear.endswith("%") else f"{wear}%"
    else:
        for name in WEAR_ATTRIBUTES:
            attribute = _attribute(text, name)
            if attribute:
                facts["wear"] = f"{max(0, 100 - attribute[0])}%"
                break

    return report
