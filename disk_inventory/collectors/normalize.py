"""Normalization helpers shared by the collectors"""

import re
from typing import Tuple

from ..models import PLACEHOLDER, is_unset

# Vendor strings that name a transport rather than a manufacturer
GENERIC_VENDORS = {"ATA", "NVME", "USB", "SATA", "SCSI"}

KNOWN_MANUFACTURERS = {
    "CRUCIAL", "DELL", "HGST", "HITACHI", "HP", "HPE", "INTEL", "KINGSTON",
    "LENOVO", "MICRON", "SAMSUNG", "SANDISK", "SEAGATE", "TOSHIBA", "WDC",
    "WD", "KIOXIA", "SK", "ADATA", "TRANSCEND", "PNY", "SUPERMICRO",
}


def split_manufacturer(model: str, vendor: str = "") -> Tuple[str, str]:
    """Split a model string into (manufacturer, model without prefix)

    Args:
        model: Model string as reported by the tool
        vendor: Vendor column, if the tool reports one

    Returns:
        Tuple of manufacturer and stripped model
    """
    model = " ".join((model or "").split())
    vendor = (vendor or "").strip()
    usable_vendor = vendor and not is_unset(vendor) and vendor.upper() not in GENERIC_VENDORS

    if is_unset(model):
        return (vendor if usable_vendor else PLACEHOLDER), PLACEHOLDER

    first, _, rest = model.partition(" ")
    if rest and first.upper() in KNOWN_MANUFACTURERS:
        return first, rest

    if usable_vendor:
        if model.upper().startswith(vendor.upper() + " "):
            model = model[len(vendor):].strip()
        return vendor, model

    if re.match(r"^ST\d", model):
        return "SEAGATE", model
    if re.match(r"^WD[A-Z0-9]", model):
        return "WDC", model
    return PLACEHOLDER, model


def base_device(dev: str) -> str:
    """Parent disk of a partition node, e.g. sda1 -> sda, nvme0n1p2 -> nvme0n1"""
    dev = dev.strip()
    if dev.startswith("/dev/"):
        dev = dev[5:]
    if re.search(r"^(nvme\d+n\d+|mmcblk\d+|loop\d+|md\d+)p\d+$", dev):
        return re.sub(r"p\d+$", "", dev)
    if re.match(r"^(nvme\d+n\d+|mmcblk\d+|md\d+|dm-\d+|loop\d+)$", dev):
        return dev
    return re.sub(r"\d+$", "", dev)


def parse_size(text: str) -> int:
    """Parse sizes such as '4,000,787,030,016 bytes' or '3.637 TB' into bytes"""
    if not text:
        return 0
    match = re.search(r"([\d,]+)\s*bytes", text)
    if match:
        return int(match.group(1).replace(",", ""))
    match = re.match(r"^\s*(\d{1,3}(?:,\d{3})+)\b", text)
    if match:
        return int(match.group(1).replace(",", ""))
    match = re.search(r"([\d.]+)\s*([KMGTP])i?B", text, re.IGNORECASE)
    if match:
        units = {"K": 1, "M": 2, "G": 3, "T": 4, "P": 5}
        return int(float(match.group(1)) * 1024 ** units[match.group(2).upper()])
    if text.strip().isdigit():
        return int(text.strip())
    return 0


def wwn_alias(value: str) -> str:
    """by-id alias token for a WWN as reported by various tools"""
    token = re.sub(r"[\s:]", "", value or "").lower()
    if token.startswith(("eui.", "nguid.")):
        return f"nvme-{token}"
    if token.startswith("0x"):
        token = token[2:]
    if not token or not re.match(r"^[0-9a-f]+$", token) or set(token) == {"0"}:
        return PLACEHOLDER
    return f"wwn-0x{token}"
