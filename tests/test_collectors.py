"""Tests for the collectors and their ordering"""

import json
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest

from disk_inventory.collectors import (COLLECTORS, DEPENDS_ON, BaseCollector, BlockDeviceCollector,
                                       CephCollector, LvmCollector, MdRaidCollector, SasIrcuCollector,
                                       StorcliCollector, ZpoolCollector, build_collectors,
                                       ordered, run_collectors)
from disk_inventory.collectors.lsblk import boot_loader_flags
from disk_inventory.collectors.normalize import base_device, parse_size, split_manufacturer, wwn_alias
from disk_inventory.models import Location
from disk_inventory.registry import FIELD_POLICY, DriveRegistry, Keyspace, MergePolicy

STORCLI_DRIVES = json.dumps({
    "Controllers": [{
        "Command Status": {"Controller": 0, "Status": "Success"},
        "Response Data": {
            "Drive /c0/e32/s5": [{
                "EID:Slt": "32:5", "DID": 5, "State": "Onln", "DG": 0, "Size": "3.637 TB",
                "Intf": "SATA", "Med": "HDD", "Model": "ST4000NM0035-1V4107", "Sp": "U",
            }],
            "Drive /c0/e32/s5 - Detailed Information": {
                "Drive /c0/e32/s5 State": {"Media Error Count": 0, "Predictive Failure Count": 0},
                "Drive /c0/e32/s5 Device attributes": {
                    "SN": "ZC1A2B3C",
                    "WWN": "5000C500A1B2C3D4",
                    "Firmware Revision": "TN03",
                    "Raw size": "3.638 TB [0x1d1c0beb0 Sectors]",
                    "Model Number": "ST4000NM0035-1V4107",
                    "Manufacturer Id": "ATA",
                },
            },
        },
    }]
})

STORCLI_ARRAYS = json.dumps({
    "Controllers": [{
        "Command Status": {"Controller": 0, "Status": "Success"},
        "Response Data": {
            "/c0/v0": [{"DG/VD": "0/0", "TYPE": "RAID1", "State": "Optl"}],
            "PDs for VD 0": [{"EID:Slt": "32:5", "DID": 5, "State": "Onln"}],
        },
    }]
})

STORCLI2_DRIVES = json.dumps({
    "Controllers": [{
        "Command Status": {"Controller": 1, "Status": "Success"},
        "Response Data": {
            "Drives List": [{
                "Drive Information": {
                    "EID:Slt": "250:2", "DID": 12, "State": "UGood", "Status": "Online",
                    "Size": "3.492 TB", "Intf": "SAS", "Med": "SSD", "Model": "MZILT3T8HBLS/007",
                },
                "Drive Detailed Information": {
                    "Serial Number": "S5G0NE0R200123",
                    "Vendor": "SAMSUNG",
                    "WWN": "5002538B0123ABCD",
                    "Model": "MZILT3T8HBLS/007",
                    "Firmware Revision": "GXA0",
                },
            }],
        },
    }]
})

LSBLK_OUTPUT = json.dumps({
    "blockdevices": [
        {"name": "sda", "type": "disk", "size": 4000787030016, "tran": "sas", "rota": True,
         "serial": "ZC1A2B3C", "wwn": "0x5000c500a1b2c3d4", "model": "ST4000NM0035-1V4107",
         "vendor": "ATA     ", "rev": "TN03", "pttype": "gpt", "fstype": None, "mountpoint": None,
         "children": [{"name": "sda1", "type": "part", "fstype": "zfs_member", "mountpoint": None}]},
        {"name": "nvme0n1", "type": "disk", "size": 500107862016, "tran": "nvme", "rota": False,
         "serial": "S4EWNX0R123456", "wwn": "eui.0025385b71b2c3d4",
         "model": "Samsung SSD 970 EVO Plus 500GB", "vendor": None, "rev": "2B2QEXM7",
         "pttype": "gpt", "fstype": None, "mountpoint": None,
         "children": [{"name": "nvme0n1p1", "type": "part", "fstype": "vfat", "mountpoint": "/boot/efi"},
                      {"name": "nvme0n1p2", "type": "part", "fstype": "ext4", "mountpoint": "/"}]},
        {"name": "sdb", "type": "disk", "size": 1000204886016, "tran": "usb", "rota": False,
         "serial": "4C530001", "wwn": None, "model": "Extreme", "vendor": "SanDisk", "rev": "1.00",
         "pttype": None, "fstype": None, "mountpoint": None},
        {"name": "sdc", "type": "disk", "size": 4000787030016, "tran": "sas", "rota": True,
         "serial": "WD-WCC7K1234567", "wwn": "0x50014ee2b1234567", "model": "WDC WD40EFRX-68N32N0",
         "vendor": "ATA", "rev": "0A82", "pttype": None, "fstype": None, "mountpoint": None},
        {"name": "loop0", "type": "loop", "size": 65536, "tran": None, "rota": False},
        {"name": "sr0", "type": "rom", "size": 1073741312, "tran": "sata", "rota": True,
         "serial": "K1AH5V0123", "wwn": None, "model": "DVD-RAM GH24NSD1", "vendor": "HL-DT-ST",
         "rev": "LG00", "pttype": None, "fstype": None, "mountpoint": None},
    ]
})

SAS_IRCU_LIST = """\
LSI Corporation SAS3 IR Configuration Utility.
Version 17.00.00.00 (2018.04.02)
         Adapter      Vendor  Device                       SubSys  SubSys
 Index    Type          ID      ID    Pci Address          Ven ID  Dev ID
 -----  ------------  ------  ------  -----------------    ------  ------
   0     SAS3008     1000h    97h   00h:01h:00h:00h      1000h   30e0h
SAS3IRCU: Utility Completed Successfully.
"""

SAS_IRCU_DISPLAY = """\
------------------------------------------------------------------------
Physical device information
------------------------------------------------------------------------
Initiator at ID #0

Device is a Hard disk
  Enclosure #                             : 2
  Slot #                                  : 3
  SAS Address                             : 4433221-1-0300-0000
  State                                   : Ready (RDY)
  Size (in MB)/(in sectors)               : 3815447/7814037167
  Manufacturer                            : ATA
  Model Number                            : WDC WD40EFRX-68N
  Firmware Revision                       : 0A82
  Serial No                               : K1234567
  GUID                                    : 50014ee2b1234567
  Protocol                                : SATA
  Drive Type                              : SATA_HDD

Device is a Hard disk
  Enclosure #                             : 2
  Slot #                                  : 4
  SAS Address                             : 4433221-1-0400-0000
  State                                   : Failed (FLD)
  Size (in MB)/(in sectors)               : 3815447/7814037167
  Manufacturer                            : ATA
  Model Number                            : ST4000VN008-2DR1
  Firmware Revision                       : SC60
  Serial No                               : ZGY9ABCD
  GUID                                    : 5000c500b1234567
  Protocol                                : SATA
  Drive Type                              : SATA_HDD

Device is a Enclosure services device
  Enclosure #                             : 2
  Slot #                                  : 24
------------------------------------------------------------------------
SAS3IRCU: Command DISPLAY Completed Successfully.
"""

PVS_OUTPUT = """\
  /dev/sdc1|vg0
  /dev/sdd|
  /dev/nvme0n1p3|ceph-0f1e2d3c
"""

MDADM_SCAN = """\
ARRAY /dev/md/0 metadata=1.2 name=host:0 UUID=3aaa0122:29827cfa:5331ad66:ca767371
   devices=/dev/sda1,/dev/sdb1,/dev/sdc1
"""

MDADM_DETAIL = """\
/dev/md/0:
           Version : 1.2
        Raid Level : raid1
             State : clean, degraded, recovering

    Number   Major   Minor   RaidDevice State
       0       8        1        0      active sync   /dev/sda1
       -       0        0        1      removed
       2       8       17        1      spare rebuilding   /dev/sdb1

       3       8       33        -      faulty   /dev/sdc1
"""

CEPH_VOLUME = json.dumps({
    "0": [{"type": "block", "devices": ["/dev/sdb"], "tags": {}},
          {"type": "db", "devices": ["/dev/nvme0n1"], "tags": {}}],
    "1": [{"type": "block", "devices": ["/dev/sdc"], "tags": {}}],
})

ZPOOL_STATUS = """\
  pool: tank
 state: ONLINE
  scan: scrub repaired 0B in 05:12:31 with 0 errors on Sun Oct 11 05:36:32 2026
config:

\tNAME              STATE     READ WRITE CKSUM
\ttank              ONLINE       0     0     0
\t  mirror-0        ONLINE       0     0     0
\t    /dev/sda1     ONLINE       0     0     0
\t    /dev/sdb1     DEGRADED     0     0     3
\tcache
\t  /dev/nvme0n1p1  ONLINE       0     0     0
\tspares
\t  /dev/sdc1       AVAIL

errors: No known data errors
"""


class TestNormalize:

    def test_split_manufacturer(self):
        assert split_manufacturer("Samsung SSD 970 EVO Plus 500GB") == ("Samsung", "SSD 970 EVO Plus 500GB")
        assert split_manufacturer("ST4000NM0035-1V4107", "ATA") == ("SEAGATE", "ST4000NM0035-1V4107")
        assert split_manufacturer("Extreme", "SanDisk") == ("SanDisk", "Extreme")
        assert split_manufacturer("", "") == ("-", "-")

    def test_base_device(self):
        assert base_device("/dev/sda1") == "sda"
        assert base_device("nvme0n1p2") == "nvme0n1"
        assert base_device("nvme0n1") == "nvme0n1"
        assert base_device("/dev/sdb") == "sdb"

    def test_parse_size(self):
        assert parse_size("4,000,787,030,016 bytes [4.00 TB]") == 4000787030016
        assert parse_size("500,107,862,016 [500 GB]") == 500107862016
        assert parse_size("1.000 KB") == 1024
        assert parse_size("garbage") == 0

    def test_wwn_alias(self):
        assert wwn_alias("5000C500A1B2C3D4") == "wwn-0x5000c500a1b2c3d4"
        assert wwn_alias("0x5000c500a1b2c3d4") == "wwn-0x5000c500a1b2c3d4"
        assert wwn_alias("eui.0025385b71b2c3d4") == "nvme-eui.0025385b71b2c3d4"
        assert wwn_alias("0000000000000000") == "-"
        assert wwn_alias("") == "-"


class TestStorcliCollector:

    def test_parse_drives(self):
        drives = StorcliCollector().parse_drives(json.loads(STORCLI_DRIVES))

        assert len(drives) == 1
        controller, did, facts = drives[0]
        assert (controller, did) == ("0", "5")
        assert facts["serial"] == "ZC1A2B3C"
        assert facts["alias"] == "wwn-0x5000c500a1b2c3d4"
        assert facts["manufacturer"] == "SEAGATE"
        assert facts["size"] == 4000787030016
        assert facts["media"] == "SATA-HDD"
        assert facts["location"] == Location("5", "32", "0")
        assert facts["drive_id"] == "c0d5"
        assert facts["health"] == "0"

    def test_parse_arrays(self):
        members = StorcliCollector().parse_arrays(json.loads(STORCLI_ARRAYS))
        assert members == [("c0d5", "c0v0")]

    def test_parse_storcli2_drives(self):
        drives = StorcliCollector().parse_drives(json.loads(STORCLI2_DRIVES))

        assert len(drives) == 1
        controller, did, facts = drives[0]
        assert (controller, did) == ("1", "12")
        assert facts["serial"] == "S5G0NE0R200123"
        assert facts["alias"] == "wwn-0x5002538b0123abcd"
        assert facts["firmware"] == "GXA0"
        assert facts["media"] == "SAS-SSD"
        assert facts["location"] == Location("2", "250", "1")
        assert facts["location"].source == "storcli"
        assert facts["drive_id"] == "c1d12"
        assert facts["state"] == "Ready"

    def test_controller_facts_converge_with_block_devices(self, registry):
        storcli = StorcliCollector()
        lsblk = BlockDeviceCollector(read_boot_sector=False)

        with patch.object(storcli, "_execute_command", side_effect=[STORCLI_DRIVES, STORCLI_ARRAYS]):
            storcli.collect(registry)
        assert registry["ZC1A2B3C"].array == "c0v0"

        with patch.object(lsblk, "_execute_command", return_value=LSBLK_OUTPUT):
            lsblk.collect(registry)

        assert "ZC1A2B3C" not in registry
        drive = registry["sda"]
        assert drive.array == "c0v0"
        assert drive.location_key == "0:32:5"
        assert drive.state == "Onln"
        assert registry.bays.get("0:32:5") == "sda"


class TestBlockDeviceCollector:

    def test_parse(self):
        parsed = {name: (facts, bus) for name, facts, bus in
                  BlockDeviceCollector(read_boot_sector=False).parse(json.loads(LSBLK_OUTPUT))}

        assert set(parsed) == {"sda", "nvme0n1", "sdb", "sdc", "sr0"}
        assert parsed["sda"][0]["usage"] == "zfs_member"
        assert parsed["sda"][0]["boot"] == "gpt"
        assert parsed["sda"][1] == ""
        assert parsed["nvme0n1"][0]["usage"] == "/"
        assert parsed["nvme0n1"][0]["media"] == "NVME-SSD"
        assert parsed["nvme0n1"][0]["alias"] == "nvme-eui.0025385b71b2c3d4"
        assert parsed["nvme0n1"][1] == "NVME"
        assert parsed["sdb"][0]["usage"] == "-"
        assert parsed["sdb"][1] == "USB"
        assert parsed["sr0"][0]["media"] == "DVD"

    def test_collect_places_bus_drives(self, registry):
        lsblk = BlockDeviceCollector(read_boot_sector=False)
        with patch.object(lsblk, "_execute_command", return_value=LSBLK_OUTPUT):
            lsblk.collect(registry)

        assert len(registry) == 5
        assert registry["nvme0n1"].location_key == "NVME:0"
        assert registry["sdb"].location_key == "USB:0"
        assert registry["sdb"].media == "SATA-SSD-USB"
        assert registry["sda"].location is None

    def test_smart_facts_merged(self, registry):
        report = SimpleNamespace(facts={"health": "PASSED", "wear": "2%"}, interface="nvme",
                                 rotational=False, form_factor="M.2")
        smart = Mock()
        smart.probe.side_effect = lambda drive, device: report if drive == "nvme0n1" else None
        lsblk = BlockDeviceCollector(smart=smart, read_boot_sector=False)

        with patch.object(lsblk, "_execute_command", return_value=LSBLK_OUTPUT):
            lsblk.collect(registry)

        assert registry["nvme0n1"].health == "PASSED"
        assert registry["nvme0n1"].wear == "2%"
        # NVMe bus location is not refined by the form factor
        assert registry["nvme0n1"].location_key == "NVME:0"

    def test_boot_loader_flags(self):
        sector = bytearray(512)
        sector[0x180:0x184] = b"GRUB"
        sector[510:512] = b"\x55\xaa"
        assert boot_loader_flags(bytes(sector)) == ["grub"]
        assert boot_loader_flags(bytes(512)) == []


class TestSasIrcuCollector:

    def test_parse_display(self):
        collector = SasIrcuCollector()
        drives = collector.parse_display(SAS_IRCU_DISPLAY, "0")

        assert len(drives) == 2
        first = drives[0]
        assert first["serial"] == "K1234567"
        assert first["location"] == Location("3", "2", "0")
        assert first["state"] == "Ready"
        assert first["manufacturer"] == "WDC"
        assert first["media"] == "SATA-HDD"
        assert first["size"] == 7814037167 * 512
        assert drives[1]["state"] == "Failed"

    def test_extract_controller_ids(self):
        assert SasIrcuCollector()._extract_controller_ids(SAS_IRCU_LIST) == ["0"]

    def test_short_serial_matches_known_drive(self, registry):
        registry.observe("sdc", Keyspace.DEVICE, {"serial": "WD-WCC7K1234567"})
        collector = SasIrcuCollector()

        with patch.object(collector, "_execute_command", side_effect=[SAS_IRCU_LIST, SAS_IRCU_DISPLAY]):
            collector.collect(registry)

        assert len(registry) == 1
        assert registry["sdc"].location_key == "0:2:3"
        assert registry["sdc"].state == "Ready"


class TestGroupCollectors:

    def test_lvm_parse(self):
        assert LvmCollector.parse(PVS_OUTPUT) == [("sdc", "vg0"), ("nvme0n1", "ceph-0f1e2d3c")]

    def test_mdraid_parse(self):
        assert MdRaidCollector.parse_scan(MDADM_SCAN) == ["/dev/md/0"]
        assert MdRaidCollector.parse_detail(MDADM_DETAIL) == [
            ("sda", "active"), ("sdb", "rebuilding"), ("sdc", "faulty")]

    def test_mdraid_collect(self, registry):
        for name in ("sda", "sdb"):
            registry.observe(name, Keyspace.DEVICE, {})
        collector = MdRaidCollector()

        with patch.object(collector, "_execute_command", side_effect=[MDADM_SCAN, MDADM_DETAIL]):
            collector.collect(registry)

        assert registry["sda"].array == "md0"
        assert registry["sdb"].state == "rebuilding"
        assert "sdc" not in registry

    def test_ceph_parse(self):
        assert CephCollector().parse(json.loads(CEPH_VOLUME)) == [
            ("sdb", "ceph"), ("nvme0n1", "ceph-db"), ("sdc", "ceph")]

    def test_zpool_parse(self):
        assert ZpoolCollector().parse(ZPOOL_STATUS) == [
            ("sda", "tank", "ONLINE"),
            ("sdb", "tank", "DEGRADED"),
            ("nvme0n1", "tank-cache", "ONLINE"),
            ("sdc", "tank-spare", ""),
        ]

    def test_first_claim_wins_across_collectors(self, registry):
        registry.observe("sdc", Keyspace.DEVICE, {})
        lvm = LvmCollector()
        zpool = ZpoolCollector()

        with patch.object(lvm, "_execute_command", return_value=PVS_OUTPUT):
            lvm.collect(registry)
        with patch.object(zpool, "_execute_command", return_value=ZPOOL_STATUS):
            zpool.collect(registry)

        assert registry["sdc"].array == "vg0"


def fake_tools(cmd, logger=None, decode_method="utf-8"):
    """Canned output of every collector's tool, keyed by command line"""
    tool, args = cmd[0], cmd[1:]
    if tool == "storcli2":
        return 0, STORCLI_DRIVES if args[0] == "/call/eall/sall" else STORCLI_ARRAYS
    if tool == "sas3ircu":
        return 0, SAS_IRCU_LIST if args[0] == "LIST" else SAS_IRCU_DISPLAY
    if tool == "mdadm":
        return 0, MDADM_SCAN if "--scan" in args else MDADM_DETAIL
    outputs = {"lsblk": LSBLK_OUTPUT, "pvs": PVS_OUTPUT, "ceph-volume": CEPH_VOLUME, "zpool": ZPOOL_STATUS}
    if tool in outputs:
        return 0, outputs[tool]
    return None, ""


class TestCollectorSequence:
    """Whole runs of every collector against the same tool output"""

    GROUP_COLLECTORS = (LvmCollector, MdRaidCollector, CephCollector, ZpoolCollector)

    def run_all(self, logger, group_order=GROUP_COLLECTORS):
        registry = DriveRegistry(logger=logger)
        with patch.object(BaseCollector, "_check_command_exists", return_value=True):
            collectors = [StorcliCollector(logger=logger),
                          BlockDeviceCollector(logger=logger, read_boot_sector=False),
                          SasIrcuCollector(logger=logger)]
            collectors += [cls(logger=logger) for cls in group_order]
        with patch("disk_inventory.collectors.base.run_command", side_effect=fake_tools):
            run_collectors(registry, collectors, logger)
        return registry

    @staticmethod
    def snapshot(registry):
        return {record.id: record.to_dict() for record in registry}

    def test_full_run(self, logger):
        registry = self.run_all(logger)

        assert sorted(record.id for record in registry) == ["nvme0n1", "sda", "sdb", "sdc", "sr0"]
        assert registry.bays.get("0:32:5") == "sda"
        assert registry.bays.get("0:2:3") == "sdc"
        assert registry["sda"].array == "c0v0"
        assert registry["sdc"].array == "vg0"
        assert registry["sdb"].state == "DEGRADED"

    def test_repeated_runs_are_identical(self, logger):
        first = self.run_all(logger)
        second = self.run_all(logger)

        assert self.snapshot(first) == self.snapshot(second)
        assert first.bays.assignments == second.bays.assignments

    def test_fill_fields_independent_of_group_collector_order(self, logger):
        forward = self.run_all(logger)
        backward = self.run_all(logger, tuple(reversed(self.GROUP_COLLECTORS)))

        fill_fields = [name for name, policy in FIELD_POLICY.items() if policy is MergePolicy.FILL]
        assert set(self.snapshot(forward)) == set(self.snapshot(backward))
        for record in forward:
            other = backward[record.id]
            assert {f: getattr(record, f) for f in fill_fields} == {f: getattr(other, f) for f in fill_fields}
            assert record.location == other.location
        assert forward.bays.assignments == backward.bays.assignments


class TestOrdering:

    def test_default_order(self):
        names = [c.name for c in ordered(build_collectors())]
        assert names == ["storcli", "lsblk", "sas_ircu", "lvm", "mdraid", "ceph", "zpool"]
        assert len(COLLECTORS) == len(names)

    def test_dependencies_run_first(self):
        collectors = [SimpleNamespace(name=n) for n in ("zpool", "lsblk", "storcli")]
        assert [c.name for c in ordered(collectors)] == ["storcli", "lsblk", "zpool"]

    def test_absent_dependency_ignored(self):
        collectors = [SimpleNamespace(name=n) for n in ("zpool", "lvm")]
        assert [c.name for c in ordered(collectors)] == ["zpool", "lvm"]

    def test_cycle_detected(self):
        collectors = [SimpleNamespace(name=n) for n in ("a", "b")]
        with patch.dict(DEPENDS_ON, {"a": ("b",), "b": ("a",)}):
            with pytest.raises(ValueError):
                ordered(collectors)


class TestRunCollectors:

    def _collector(self, name, available=True, error=None):
        collector = Mock()
        collector.name = name
        collector.is_available.return_value = available
        collector.collect.side_effect = error
        return collector

    def test_missing_tools_skipped_and_failures_contained(self, registry):
        storcli = self._collector("storcli", available=False)
        lsblk = self._collector("lsblk", error=RuntimeError("boom"))
        zpool = self._collector("zpool")

        run_collectors(registry, [zpool, lsblk, storcli])

        storcli.collect.assert_not_called()
        lsblk.collect.assert_called_once_with(registry)
        zpool.collect.assert_called_once_with(registry)
