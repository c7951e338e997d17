"""Pass/fail verdict for a merged drive record"""

import re
from typing import Iterable

from .models import DriveRecord, PLACEHOLDER

HEALTHY_STATES = re.compile(r"^(active|online|onln|ready|-)$", re.IGNORECASE)
HEALTHY_VERDICTS = re.compile(r"^(ok|passed|0|-)$", re.IGNORECASE)


def is_okay(drive: DriveRecord, known_bad: Iterable[str] = ()) -> bool:
    """Check a drive against the known-bad list, its state and its health verdict

    Failing drives stay in the inventory, they are only rendered differently.
    """
    if drive.id in set(known_bad):
        return False
    if not HEALTHY_STATES.match((drive.state or PLACEHOLDER).strip()):
        return False
    if not HEALTHY_VERDICTS.match((drive.health or PLACEHOLDER).strip()):
        return False
    return True
