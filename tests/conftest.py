import asyncio

import pytest

from hns.models.errors import ResolverError
from hns.models.hostname import DNSVerificationResult
from hns.services.generator_service import HostnameGenerator
from hns.services.reservation_service import ReservationService
from hns.services.sequence_service import SequenceAllocator
from hns.services.template_service import TemplateStore

SERVER_TEMPLATE = {
    "id": 1,
    "name": "servers",
    "max_length": 15,
    "groups": [
        {"name": "region", "length": 2, "is_required": True, "validation_type": "list", "validation_value": "US,EU,AP"},
        {"name": "site", "length": 3, "is_required": True, "validation_type": "regex", "validation_value": "[A-Z]{3}"},
        {"name": "role", "length": 3, "is_required": False, "validation_type": "list",
         "validation_value": "WEB,APP,DB", "case_sensitive": False},
        {"name": "sequence", "length": 3, "is_required": True, "validation_type": "sequence"},
    ],
}

LAB_TEMPLATE = {
    "id": 2,
    "name": "lab",
    "groups": [
        {"name": "prefix", "length": 4, "is_required": True, "validation_type": "fixed", "validation_value": "lab-"},
        {"name": "sequence", "length": 4, "is_required": True, "validation_type": "sequence"},
    ],
}

STATIC_TEMPLATE = {
    "id": 3,
    "name": "static",
    "groups": [
        {"name": "prefix", "length": 4, "is_required": True, "validation_type": "fixed", "validation_value": "gw01"},
    ],
}

SERVER_PARAMS = {"region": "US", "site": "NYC", "role": "WEB"}


class FakeChecker:
    """Stand-in DNS checker that records how many lookups overlap."""

    def __init__(self, existing=None, failing=(), hanging=(), delays=None, on_call=None):
        self.existing = dict(existing or {})
        self.failing = set(failing)
        self.hanging = set(hanging)
        self.delays = dict(delays or {})
        self.on_call = on_call
        self.calls = []
        self.in_flight = 0
        self.peak = 0

    async def check(self, hostname):
        self.calls.append(hostname)
        if self.on_call is not None:
            self.on_call(len(self.calls))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            if hostname in self.hanging:
                await asyncio.sleep(3600)
            await asyncio.sleep(self.delays.get(hostname, 0))
            if hostname in self.failing:
                raise ResolverError(hostname, "SERVFAIL")
            ip = self.existing.get(hostname)
            return DNSVerificationResult(hostname=hostname, exists=ip is not None, ip_address=ip)
        finally:
            self.in_flight -= 1


@pytest.fixture
def store():
    return TemplateStore.from_dicts([SERVER_TEMPLATE, LAB_TEMPLATE, STATIC_TEMPLATE])


@pytest.fixture
def allocator():
    return SequenceAllocator()


@pytest.fixture
def generator(store, allocator):
    return HostnameGenerator(store, allocator)


@pytest.fixture
def reservations(generator, allocator):
    return ReservationService(generator, allocator)


@pytest.fixture
def make_checker():
    return FakeChecker
