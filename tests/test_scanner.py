import asyncio

import pytest

from hns.models.errors import InvalidRange, NotFound
from hns.services.scanner_service import DNSScanner

from conftest import SERVER_PARAMS, FakeChecker


def _scan(scanner, *args, **kwargs):
    return asyncio.run(scanner.scan(*args, **kwargs))


def test_scan_respects_concurrency_and_orders_results(generator):
    delays = {f"USNYCWEB00{n}": 0.01 * (6 - n) for n in range(1, 6)}
    checker = FakeChecker(existing={"USNYCWEB002": "10.0.0.2"}, delays=delays)
    scanner = DNSScanner(generator, checker, lookup_timeout=1.0)

    report = _scan(scanner, 1, SERVER_PARAMS, 1, 5, 2)

    assert checker.peak <= 2
    assert [e.sequence_num for e in report.results] == [1, 2, 3, 4, 5]
    assert [e.hostname for e in report.results][0] == "USNYCWEB001"
    assert report.total_hostnames == 5
    assert report.existing_hostnames == 1
    assert report.results[1].ip_address == "10.0.0.2"
    assert not report.cancelled


def test_failed_lookups_are_reported_per_entry(generator):
    checker = FakeChecker(failing={"lab-0002"})
    scanner = DNSScanner(generator, checker, lookup_timeout=1.0)

    report = _scan(scanner, 2, {}, 1, 3, 3)

    assert report.total_hostnames == 3
    assert report.failed_hostnames == 1
    assert report.results[1].error == "SERVFAIL"
    assert report.results[1].exists is None
    assert report.results[0].exists is False


def test_lookup_timeout_becomes_entry_error(generator):
    checker = FakeChecker(hanging={"lab-0001"})
    scanner = DNSScanner(generator, checker, lookup_timeout=0.05)

    report = _scan(scanner, 2, {}, 1, 2, 2)

    assert "timed out" in report.results[0].error
    assert report.results[1].error is None
    assert checker.in_flight == 0


def test_cancel_event_stops_dispatch(generator):
    async def run():
        cancel = asyncio.Event()

        def stop_after_third(count):
            if count == 3:
                cancel.set()

        checker = FakeChecker(on_call=stop_after_third)
        scanner = DNSScanner(generator, checker, lookup_timeout=1.0)
        return await scanner.scan(2, {}, 1, 10, 1, cancel_event=cancel)

    report = asyncio.run(run())
    assert report.cancelled
    assert [e.sequence_num for e in report.results] == [1, 2, 3]


def test_scan_time_budget(generator):
    checker = FakeChecker(delays={f"lab-{n:04d}": 0.05 for n in range(1, 21)})
    scanner = DNSScanner(generator, checker, lookup_timeout=1.0)

    report = _scan(scanner, 2, {}, 1, 20, 1, timeout=0.12)

    assert report.cancelled
    assert 0 < report.total_hostnames < 20


def test_zero_budget_checks_nothing(generator):
    checker = FakeChecker()
    scanner = DNSScanner(generator, checker, scan_timeout=0)

    report = _scan(scanner, 2, {}, 1, 5, 1)

    assert report.cancelled
    assert report.results == []
    assert checker.calls == []


def test_large_scan_does_not_touch_allocator(generator, allocator):
    allocator.next(2)
    before = allocator.snapshot()
    checker = FakeChecker()
    scanner = DNSScanner(generator, checker)

    report = _scan(scanner, 2, {}, 1, 1000, 50)

    assert report.total_hostnames == 1000
    assert checker.peak <= 50
    assert allocator.snapshot() == before


@pytest.mark.parametrize("template_id, start, end, workers", [
    (1, 5, 4, 1),
    (1, -1, 3, 1),
    (1, 1, 3, 0),
    (1, 1, 3, 51),
    (2, 1, 5001, 10),
    (1, 1, 1000, 10),
    (3, 1, 3, 1),
])
def test_invalid_scan_requests(generator, template_id, start, end, workers):
    scanner = DNSScanner(generator, FakeChecker())
    params = SERVER_PARAMS if template_id == 1 else {}
    with pytest.raises(InvalidRange):
        _scan(scanner, template_id, params, start, end, workers)


def test_scan_unknown_template(generator):
    scanner = DNSScanner(generator, FakeChecker())
    with pytest.raises(NotFound):
        _scan(scanner, 9, {}, 1, 2, 1)


def _discover(scanner, *args, **kwargs):
    return asyncio.run(scanner.discover_range(*args, **kwargs))


def _lab_names(*seqs):
    return {f"lab-{n:04d}": f"10.0.{n // 256}.{n % 256}" for n in seqs}


def test_discover_range_near_start(generator, allocator):
    checker = FakeChecker(existing=_lab_names(*range(3, 8)))
    scanner = DNSScanner(generator, checker, lookup_timeout=1.0)

    found = _discover(scanner, 2, {})

    assert found.to_dict()["found"] is True
    assert (found.lowest_sequence, found.highest_sequence) == (3, 7)
    assert found.lookups == len(checker.calls)
    assert allocator.snapshot() == {}


def test_discover_range_uses_coarse_steps(generator):
    checker = FakeChecker(existing=_lab_names(*range(295, 306)))
    scanner = DNSScanner(generator, checker, lookup_timeout=1.0)

    found = _discover(scanner, 2, {})

    assert (found.lowest_sequence, found.highest_sequence) == (295, 305)
    assert "lab-0301" in checker.calls


def test_discover_range_steps_over_failed_lookups(generator):
    checker = FakeChecker(
        existing=_lab_names(1, 2, 3, 6),
        failing={"lab-0004"},
        hanging={"lab-0005"},
    )
    scanner = DNSScanner(generator, checker, lookup_timeout=0.05)

    found = _discover(scanner, 2, {})

    assert (found.lowest_sequence, found.highest_sequence) == (1, 6)


def test_discover_range_finds_nothing(generator):
    checker = FakeChecker()
    scanner = DNSScanner(generator, checker, lookup_timeout=1.0)

    found = _discover(scanner, 2, {})

    assert not found.found
    assert found.highest_sequence is None
    assert found.lookups == 20


@pytest.mark.parametrize("template_id, start", [(3, 1), (1, 1000), (1, -1)])
def test_discover_range_rejects_bad_requests(generator, template_id, start):
    scanner = DNSScanner(generator, FakeChecker())
    params = SERVER_PARAMS if template_id == 1 else {}
    with pytest.raises(InvalidRange):
        _discover(scanner, template_id, params, start)
