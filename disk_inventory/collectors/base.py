"""Base collector abstraction"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
import json
import logging
import shutil
import subprocess

from ..registry import DriveRegistry


def run_command(cmd: List[str], logger: Optional[logging.Logger] = None,
                decode_method: str = "utf-8") -> Tuple[Optional[int], str]:
    """Execute a command and return its exit status and output

    A missing executable is reported as status None with empty output.
    """
    logger = logger or logging.getLogger(__name__)
    logger.debug(f"Executing command: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except (FileNotFoundError, PermissionError) as e:
        logger.debug(f"Could not execute {cmd[0]}: {e}")
        return None, ""

    try:
        output = result.stdout.decode(decode_method)
    except UnicodeDecodeError:
        logger.debug(f"{decode_method} decoding failed, falling back to latin-1")
        output = result.stdout.decode("latin-1")

    return result.returncode, output


class BaseCollector(ABC):
    """Abstract base class for collectors

    A collector wraps one external tool and reports what it sees to the
    registry. It never fails the run: a missing tool or unexpected output
    means the collector contributes nothing.
    """

    name = ""
    commands: Tuple[str, ...] = ()

    def __init__(self, logger: Optional[logging.Logger] = None):
        """Initialize the collector

        Args:
            logger: Logger instance for output
        """
        self.logger = logger or logging.getLogger(__name__)
        self.cmd = self._detect_command()

    @abstractmethod
    def collect(self, registry: DriveRegistry) -> None:
        """Query the tool and merge its facts into the registry

        Args:
            registry: Shared drive registry
        """
        pass

    def is_available(self) -> bool:
        """Check if the underlying tool is installed"""
        return bool(self.cmd)

    # Helper methods that can be used by all collectors

    def _detect_command(self) -> str:
        """First of the candidate commands found in PATH"""
        for candidate in self.commands:
            if self._check_command_exists(candidate):
                self.logger.debug(f"Found {candidate} command")
                return candidate
        return ""

    def _execute_command(self, cmd: List[str], ok_codes: Tuple[int, ...] = (0,)) -> str:
        """Execute a command and return its output

        Args:
            cmd: Command to execute as list of strings
            ok_codes: Exit statuses treated as success

        Returns:
            str: Command output, empty on failure
        """
        returncode, output = run_command(cmd, self.logger)
        if returncode is None:
            return ""
        if returncode not in ok_codes:
            self.logger.warning(f"Command {' '.join(cmd)} exited with status {returncode}")
            return ""
        return output

    def _parse_json_output(self, output: str, error_msg: str = "") -> Dict[str, Any]:
        """Parse JSON output with error handling

        Args:
            output: String output to parse as JSON
            error_msg: Error message to log if parsing fails

        Returns:
            Dict[str, Any]: Parsed JSON data or empty dict on failure
        """
        if not output.strip():
            return {}
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            if error_msg:
                self.logger.warning(f"{error_msg}: {e}")
            self.logger.debug(f"Raw output: {output[:200]}...")
            return {}

    def _check_command_exists(self, cmd: str) -> bool:
        """Check if a command exists in the system PATH

        Args:
            cmd: Command to check

        Returns:
            bool: True if command exists, False otherwise
        """
        return shutil.which(cmd) is not None
