"""Command line entry point"""

import argparse
import logging
import sys
from typing import List, Optional

from rich.console import Console

from .collectors import SmartProbe, build_collectors, run_collectors
from .colors import assign_colors
from .config import DEFAULT_CONFIG, ConfigManager
from .locate import LocateError, locate, parse_state
from .models import DriveRecord
from .registry import DriveRegistry
from .render import inventory_rows, mask_serials, print_bays, print_json, print_table


class DiskInventory:
    """Main class of the disk inventory tool

    Runs every collector against one shared registry, then either renders the
    inventory (table, JSON or bay view) or toggles the locate indicator of a
    single drive.
    """

    def __init__(self, console: Optional[Console] = None):
        """Initialize the DiskInventory instance"""
        # Options
        self.config_file = DEFAULT_CONFIG
        self.json_output = False
        self.show_bays = False
        self.unused_only = False
        self.demo = False
        self.use_cache = False
        self.verbose = False
        self.quiet = False
        self.locate_drive = None
        self.locate_state = None
        self.locate_tool = None

        # Components (initialized later)
        self.logger = self._setup_logger()
        self.console = console or Console()
        self.config_manager: Optional[ConfigManager] = None
        self.registry: Optional[DriveRegistry] = None

    def _setup_logger(self) -> logging.Logger:
        """Set up the logger for the application"""
        logger = logging.getLogger("disk-inventory")
        logger.setLevel(logging.INFO)

        if not logger.handlers:
            ch = logging.StreamHandler()
            ch.setLevel(logging.INFO)

            formatter = logging.Formatter('[%(levelname)s] %(message)s')
            ch.setFormatter(formatter)

            logger.addHandler(ch)

        return logger

    def parse_arguments(self, argv: Optional[List[str]] = None) -> None:
        """Parse command line arguments"""
        parser = argparse.ArgumentParser(
            description="Inventories local drives and maps them to their physical bays."
        )

        parser.add_argument("-c", "--config", default=DEFAULT_CONFIG, metavar="FILE",
                            help=f"Configuration file (default: {DEFAULT_CONFIG})")
        parser.add_argument("-j", "--json", action="store_true", help="Output results in JSON format")
        parser.add_argument("-b", "--bays", action="store_true", help="Show the bay view of each enclosure")
        parser.add_argument("-u", "--unused", action="store_true", help="Show only drives without detected usage")
        parser.add_argument("-d", "--demo", action="store_true", help="Mask serial numbers and aliases")
        parser.add_argument("--cache", action="store_true", help="Replay cached smartctl output")
        parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
        parser.add_argument("-q", "--quiet", action="store_true", help="Suppress INFO messages")
        parser.add_argument("-l", "--locate", nargs="+", metavar=("DRIVE", "STATE"),
                            help="Turn the locate indicator of DRIVE on or off (default: on)")
        parser.add_argument("--tool", metavar="TOOL", help="Preferred locate tool (storcli, sas3ircu, sas2ircu)")

        args = parser.parse_args(argv)

        self.config_file = args.config
        self.json_output = args.json
        self.show_bays = args.bays
        self.unused_only = args.unused
        self.demo = args.demo
        self.use_cache = args.cache
        self.verbose = args.verbose
        self.quiet = args.quiet
        self.locate_tool = args.tool

        if args.locate:
            if len(args.locate) > 2:
                parser.error("--locate takes a drive and an optional state")
            self.locate_drive = args.locate[0]
            self.locate_state = args.locate[1] if len(args.locate) > 1 else None

        # Configure logger
        if self.verbose:
            self.logger.setLevel(logging.DEBUG)
            for handler in self.logger.handlers:
                handler.setLevel(logging.DEBUG)
        elif self.quiet:
            self.logger.setLevel(logging.WARNING)
            for handler in self.logger.handlers:
                handler.setLevel(logging.WARNING)

    def collect(self) -> DriveRegistry:
        """Run every collector against a fresh registry"""
        smart = SmartProbe(drivers=self.config_manager.smart_drivers(),
                           cache_dir=self.config_manager.smart_cache,
                           use_cache=self.use_cache, logger=self.logger)
        self.registry = DriveRegistry(logger=self.logger)

        self.logger.info("Collecting drive information...")
        run_collectors(self.registry, build_collectors(smart, self.logger), self.logger)
        return self.registry

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Main entry point for the application

        Returns:
            Process exit status
        """
        self.parse_arguments(argv)
        self.config_manager = ConfigManager(self.config_file, logger=self.logger)

        try:
            # Reject a bad state before spending time on collection
            state = parse_state(self.locate_state) if self.locate_drive else None
            self.collect()

            if self.locate_drive:
                return self._handle_locate(state)
        except LocateError as e:
            self.logger.error(str(e))
            return 1

        self._display_results()
        return 0

    def _handle_locate(self, state: bool) -> int:
        """Handle locate indicator operation"""
        record = self.registry.find(self.locate_drive)
        if record is None:
            raise LocateError(f"Drive not found: {self.locate_drive}")

        tool = self.locate_tool or self.config_manager.locate_tool
        return locate(record, state, requested=tool, logger=self.logger)

    def _display_results(self) -> None:
        """Display drive inventory results"""
        colors = assign_colors(record.array for record in self.registry)
        known_bad = self.config_manager.known_bad

        if self.show_bays and not self.json_output:
            # Bays hold every drive, the unused filter only narrows listings.
            # Keyed by canonical id, which is what the bay assignment refers to.
            shown = {record.id: self._shown(record) for record in self.registry}
            print_bays(self.config_manager.enclosures, self.registry.bays, shown, colors,
                       known_bad, console=self.console)
            return

        records: List[DriveRecord] = [self._shown(record) for record in
                                      inventory_rows(self.registry, unused_only=self.unused_only)]

        if self.json_output:
            print_json(records, known_bad, console=self.console)
        else:
            if not records:
                self.console.print("No drives found")
                return
            print_table(records, colors, known_bad, console=self.console)

    def _shown(self, record: DriveRecord) -> DriveRecord:
        return mask_serials(record) if self.demo else record


def main() -> None:
    """Console script entry point"""
    sys.exit(DiskInventory().run())


if __name__ == "__main__":
    main()
