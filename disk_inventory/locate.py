"""Locate indicator control through enclosure management tools

Translates the canonical {controller:enclosure:slot} location of a drive into
the addressing syntax of whichever enclosure tool is installed.
"""

from abc import ABC, abstractmethod
import logging
import shutil
from typing import Callable, List, Optional, Tuple

from .collectors.base import run_command
from .models import DriveRecord, Location

ON_STATES = ("on", "1", "true", "yes", "start", "enable")
OFF_STATES = ("off", "0", "false", "no", "stop", "disable")


class LocateError(Exception):
    """Locate request that cannot be carried out"""


def parse_state(token: Optional[str]) -> bool:
    """Desired indicator state from a command line token

    Raises:
        LocateError: If the token is not a known on/off synonym
    """
    if token is None:
        return True
    value = token.strip().lower()
    if value in ON_STATES:
        return True
    if value in OFF_STATES:
        return False
    raise LocateError(f"Invalid locate state '{token}', expected one of: "
                      f"{', '.join(ON_STATES)} / {', '.join(OFF_STATES)}")


class LocateTool(ABC):
    """An enclosure tool able to toggle a slot's locate indicator"""

    name = ""
    collector = ""                       # Collector whose controller numbering the tool shares
    executables: Tuple[str, ...] = ()
    states = ("ON", "OFF")

    def find(self, which: Optional[Callable[[str], Optional[str]]] = None) -> Optional[str]:
        """First installed executable of this tool"""
        which = which or shutil.which
        for executable in self.executables:
            if which(executable):
                return executable
        return None

    @abstractmethod
    def argv(self, executable: str, location: Location, state: bool) -> List[str]:
        """Command line setting the indicator of a location"""
        pass


class StorcliTool(LocateTool):
    """storcli addresses /cC/eE/sS and uses start/stop"""

    name = "storcli"
    collector = "storcli"
    executables = ("storcli2", "storcli64", "storcli", "perccli64", "perccli")
    states = ("start", "stop")

    def argv(self, executable: str, location: Location, state: bool) -> List[str]:
        action = self.states[0] if state else self.states[1]
        return [executable, f"/c{location.controller}/e{location.enclosure}/s{location.slot}",
                action, "locate"]


class SasIrcuTool(LocateTool):
    """sas2ircu/sas3ircu take the controller index and an enclosure:slot pair"""

    collector = "sas_ircu"

    def __init__(self, name: str):
        self.name = name
        self.executables = (name,)

    def argv(self, executable: str, location: Location, state: bool) -> List[str]:
        action = self.states[0] if state else self.states[1]
        return [executable, location.controller, "LOCATE",
                f"{location.enclosure}:{location.slot}", action]


# Preference order when no tool is requested, first installed one wins
LOCATE_TOOLS: List[LocateTool] = [StorcliTool(), SasIrcuTool("sas3ircu"), SasIrcuTool("sas2ircu")]


def select_tool(requested: Optional[str] = None,
                which: Optional[Callable[[str], Optional[str]]] = None,
                logger: Optional[logging.Logger] = None) -> Tuple[LocateTool, str]:
    """Pick the locate tool to use

    Args:
        requested: Tool name asked for by the operator, if any
        which: Executable lookup
        logger: Logger instance

    Returns:
        The tool and the executable to run

    Raises:
        LocateError: If no enclosure management tool is installed
    """
    logger = logger or logging.getLogger(__name__)
    which = which or shutil.which

    if requested:
        tool = next((t for t in LOCATE_TOOLS if requested == t.name or requested in t.executables), None)
        if tool is None:
            logger.warning(f"Unknown locate tool {requested}, falling back")
        else:
            if requested in tool.executables and which(requested):
                return tool, requested
            executable = tool.find(which)
            if executable:
                return tool, executable
            logger.warning(f"Requested locate tool {requested} is not installed, falling back")

    for tool in LOCATE_TOOLS:
        executable = tool.find(which)
        if executable:
            logger.debug(f"Selected locate tool {tool.name} ({executable})")
            return tool, executable

    raise LocateError("No enclosure management tool found. Please install storcli, sas3ircu or sas2ircu.")


def build_command(location: Location, state: bool, tool: LocateTool,
                  executable: Optional[str] = None) -> List[str]:
    """Command line toggling the indicator of a location

    Raises:
        LocateError: If the location is not controller addressable
    """
    if location is None or not location.is_addressable:
        raise LocateError(f"Location {location or '-'} has no controller:enclosure:slot address")
    return tool.argv(executable or tool.executables[0], location, state)


def locate(record: DriveRecord, state: bool, requested: Optional[str] = None,
           which: Optional[Callable[[str], Optional[str]]] = None,
           logger: Optional[logging.Logger] = None) -> int:
    """Toggle the locate indicator of a drive

    Args:
        record: Drive to locate
        state: True to turn the indicator on
        requested: Preferred tool name
        which: Executable lookup
        logger: Logger instance

    Returns:
        Exit status of the enclosure tool

    Raises:
        LocateError: If the drive has no controller addressable location,
            no tool is installed or the tool could not be executed
    """
    logger = logger or logging.getLogger(__name__)

    if record.location is None or not record.location.is_addressable:
        raise LocateError(f"Drive {record.id} at {record.location_key} cannot be located: "
                          f"no controller:enclosure:slot address")

    tool, executable = select_tool(requested, which, logger)
    cmd = build_command(record.location, state, tool, executable)

    source = record.location.source
    if source and source != tool.collector:
        logger.warning(f"Location {record.location_key} of {record.id} was reported by {source}, "
                       f"its controller index is passed to {tool.name} unchanged")
    logger.info(f"Turning {'on' if state else 'off'} locate indicator of {record.id} at "
                f"{record.location_key} ({source or 'unknown source'}) using {executable}")

    returncode, output = run_command(cmd, logger)
    if returncode is None:
        raise LocateError(f"Could not execute {executable}")
    if output.strip():
        logger.debug(output.strip())
    if returncode != 0:
        logger.warning(f"{executable} exited with status {returncode}")
    return returncode
