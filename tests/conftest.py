"""Shared pytest fixtures."""

import pytest
from pubsub import pub

from blelink.discovery import Scanner
from blelink.gateway import AdvertisedDevice
from blelink.registry import DeviceRegistry

from tests.fakes import FakeGateway, make_device, standard_services


@pytest.fixture
def device() -> AdvertisedDevice:
    return make_device()


@pytest.fixture
def gateway(device) -> FakeGateway:
    return FakeGateway(devices=[device], services={device.system_id: standard_services()})


@pytest.fixture
def registry() -> DeviceRegistry:
    return DeviceRegistry()


@pytest.fixture
def scanner(gateway) -> Scanner:
    return Scanner(gateway)


@pytest.fixture(autouse=True)
def _reset_pubsub():
    """Drop pubsub listeners registered by a test."""
    yield
    pub.unsubAll()
