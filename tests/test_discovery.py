"""Tests for peripheral handles, the discovery set and scan response parsing."""

import logging
import random
from types import SimpleNamespace

import pytest

from bleconnector.interfaces.ble.discovery import (
    DiscoverySet,
    Peripheral,
    parse_scan_response,
    peripheral_from_advertisement,
)
from bleconnector.interfaces.ble.utils import matches_name_filter


def _device(address, name=None):
    return SimpleNamespace(address=address, name=name)


def _adv(local_name=None, rssi=-50):
    return SimpleNamespace(local_name=local_name, rssi=rssi)


class TestPeripheral:
    def test_identity_is_identifier(self):
        assert Peripheral("id-1", "ZeBLE") == Peripheral("id-1", "renamed")
        assert Peripheral("id-1") != Peripheral("id-2")
        assert len({Peripheral("id-1"), Peripheral("id-1", "x")}) == 1

    def test_display_name_falls_back(self):
        assert Peripheral("id-1").display_name == "Unknown Device"
        assert Peripheral("id-1", "ZeBLE-01").display_name == "ZeBLE-01"

    def test_empty_identifier_rejected(self):
        with pytest.raises(ValueError):
            Peripheral("")


class TestDiscoverySet:
    """Filtering and de-duplication of scan results."""

    def test_filter_admits_only_matching_names(self):
        discovery = DiscoverySet("ZeBLE")

        assert discovery.add(Peripheral("a", "ZeBLE-01"))
        assert not discovery.add(Peripheral("b", "OtherDevice"))
        assert not discovery.add(Peripheral("c"))

        assert [p.name for p in discovery.snapshot()] == ["ZeBLE-01"]

    def test_filter_is_case_sensitive_substring(self):
        discovery = DiscoverySet("ZeBLE")
        assert discovery.add(Peripheral("a", "my-ZeBLE-sensor"))
        assert not discovery.add(Peripheral("b", "zeble-02"))

    @pytest.mark.parametrize("name_filter", [None, ""])
    def test_no_filter_admits_everything(self, name_filter):
        discovery = DiscoverySet(name_filter)

        discovery.add(Peripheral("a", "ZeBLE-01"))
        discovery.add(Peripheral("b", "OtherDevice"))
        discovery.add(Peripheral("c"))

        assert len(discovery) == 3
        assert discovery.name_filter is None

    def test_no_duplicate_identifiers(self):
        discovery = DiscoverySet()
        events = [Peripheral("a", "ZeBLE-01"), Peripheral("b"), Peripheral("a", "ZeBLE-01")] * 5
        for peripheral in events:
            discovery.add(peripheral)

        identifiers = [p.identifier for p in discovery.snapshot()]
        assert sorted(identifiers) == ["a", "b"]

    def test_readvertisement_updates_in_place(self):
        discovery = DiscoverySet()
        first = Peripheral("a", rssi=-80)
        discovery.add(first)

        assert not discovery.add(Peripheral("a", rssi=-40))
        assert first.rssi == -40
        assert discovery.add(Peripheral("a", "ZeBLE-01"))
        assert discovery.get("a").name == "ZeBLE-01"

    def test_changing_filter_clears_set(self):
        discovery = DiscoverySet()
        discovery.add(Peripheral("a", "OtherDevice"))

        discovery.name_filter = "ZeBLE"

        assert len(discovery) == 0
        assert "a" not in discovery
        assert discovery.name_filter == "ZeBLE"


_NAMES = ["ZeBLE-01", "ZeBLE-02", "my-ZeBLE", "zeble-lower", "OtherDevice", None]


@pytest.mark.parametrize("name_filter", ["ZeBLE", None])
@pytest.mark.parametrize("seed", range(20))
def test_random_advertisement_sequences(name_filter, seed):
    """Any mix of new, repeated, unnamed and renamed advertisements keeps the set consistent."""
    rng = random.Random(seed)
    discovery = DiscoverySet(name_filter)
    last_admitted_name = {}

    for _ in range(rng.randint(0, 60)):
        identifier = f"AA:{rng.randint(0, 7):02d}"
        name = rng.choice(_NAMES)
        discovery.add(Peripheral(identifier, name, rssi=rng.randint(-100, -30)))
        if matches_name_filter(name, name_filter):
            if name or identifier not in last_admitted_name:
                last_admitted_name[identifier] = name or last_admitted_name.get(identifier)

    snapshot = discovery.snapshot()
    identifiers = [p.identifier for p in snapshot]
    assert len(identifiers) == len(set(identifiers))
    assert set(identifiers) == set(last_admitted_name)
    for peripheral in snapshot:
        assert matches_name_filter(peripheral.name, name_filter)
        assert peripheral.name == last_admitted_name[peripheral.identifier]


class TestAdvertisementParsing:
    def test_local_name_wins_over_device_name(self):
        peripheral = peripheral_from_advertisement(
            _device("AA:01", "cached"), _adv("ZeBLE-01", rssi=-42)
        )
        assert peripheral.identifier == "AA:01"
        assert peripheral.name == "ZeBLE-01"
        assert peripheral.rssi == -42

    def test_device_name_used_without_advertisement(self):
        device = _device("AA:01", "cached")
        peripheral = peripheral_from_advertisement(device)
        assert peripheral.name == "cached"
        assert peripheral.rssi is None
        assert peripheral.device is device

    def test_parse_scan_response_filters(self):
        response = {
            "AA:01": (_device("AA:01"), _adv("ZeBLE-01")),
            "AA:02": (_device("AA:02"), _adv("OtherDevice")),
        }

        peripherals = parse_scan_response(response, "ZeBLE")

        assert [p.identifier for p in peripherals] == ["AA:01"]

    def test_parse_scan_response_without_filter(self):
        response = {
            "AA:01": (_device("AA:01"), _adv("ZeBLE-01")),
            "AA:02": (_device("AA:02"), _adv(None)),
        }
        assert len(parse_scan_response(response)) == 2

    def test_parse_scan_response_handles_bad_input(self, caplog):
        with caplog.at_level(logging.WARNING, logger="bleconnector.ble"):
            assert parse_scan_response(None) == []
            assert parse_scan_response([]) == []
            assert parse_scan_response({"AA:01": _device("AA:01")}) == []

        assert "returned None" in caplog.text
        assert "unexpected type" in caplog.text
