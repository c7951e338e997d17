"""Configuration management for the drive inventory"""

import os
import logging
from typing import Dict, List, Optional
import yaml

from .models import Enclosure

DEFAULT_CONFIG = "/etc/disk-inventory.conf"


class ConfigManager:
    """Manages loading and accessing configuration from YAML file"""

    def __init__(self, config_file: str = DEFAULT_CONFIG, logger: Optional[logging.Logger] = None):
        """Initialize configuration manager

        Args:
            config_file: Path to configuration file
            logger: Logger instance
        """
        self.config_file = os.path.expanduser(config_file)
        self.logger = logger or logging.getLogger(__name__)

        self.enclosures: Dict[str, Enclosure] = {}
        self.known_bad: List[str] = []
        self.smart_cache: Optional[str] = None
        self.smart_driver: Optional[str] = None
        self.locate_tool: Optional[str] = None

        self.load()

    def load(self) -> None:
        """Load configuration from YAML file

        Configuration file structure:
        ```yaml
        enclosures:
          "0:32": |               # Enclosure key, grid of slot tokens
            0 1 2 3
            4 5 6 7
          internal: |             # Drives only reachable through a bus
            SATA:0 SATA:1 NVME:0 x
        known_bad: [sdz]          # Drives to always report as failing
        smart_cache: /var/cache/disk-inventory
        smart_driver: auto        # smartctl -d hint tried first
        locate_tool: storcli      # Preferred locate tool
        ```
        """
        if not os.path.exists(self.config_file):
            self.logger.warning(f"Configuration file {self.config_file} not found. Using default settings.")
            return

        try:
            self.logger.debug(f"Loading configuration from {self.config_file}")

            with open(self.config_file, 'r') as f:
                config = yaml.safe_load(f)

            if not config or not isinstance(config, dict):
                self.logger.warning(f"Configuration file {self.config_file} is empty or invalid")
                return

            if 'enclosures' in config:
                self._load_enclosures(config['enclosures'])

            self.known_bad = [str(d) for d in config.get('known_bad') or []]
            self.smart_cache = config.get('smart_cache') or None
            self.smart_driver = config.get('smart_driver') or None
            self.locate_tool = config.get('locate_tool') or None

        except yaml.YAMLError as e:
            self.logger.error(f"Error parsing YAML in configuration file: {e}")
        except IOError as e:
            self.logger.error(f"Error reading configuration file: {e}")

    def _load_enclosures(self, enclosures_data: Dict) -> None:
        """Load enclosure grids

        Args:
            enclosures_data: Enclosure key to grid, either a text block or a list of rows
        """
        if not isinstance(enclosures_data, dict):
            self.logger.warning("Ignoring 'enclosures': expected a mapping of name to grid")
            return

        for name, grid in enclosures_data.items():
            if isinstance(grid, list):
                text = "\n".join(" ".join(str(t) for t in row) if isinstance(row, list) else str(row)
                                 for row in grid)
            else:
                text = str(grid or "")

            enclosure = Enclosure.from_text(str(name), text)
            if not enclosure.slots:
                self.logger.warning(f"Skipping enclosure {name} without slots")
                continue
            self.enclosures[enclosure.name] = enclosure
            self.logger.debug(f"Loaded enclosure {name} with {len(enclosure.slots)} slots")

    def smart_drivers(self) -> Optional[List[str]]:
        """Driver hints for the SMART probe, None for the defaults"""
        if not self.smart_driver:
            return None
        return [str(self.smart_driver)]
