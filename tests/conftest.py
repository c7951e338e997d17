import logging

import pytest

from disk_inventory.registry import DriveRegistry


@pytest.fixture
def logger():
    return logging.getLogger("disk-inventory-test")


@pytest.fixture
def registry(logger):
    return DriveRegistry(logger=logger)
