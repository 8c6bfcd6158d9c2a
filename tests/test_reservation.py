import json
import threading

import pytest

from hns.models.errors import (
    AlreadyReserved,
    InvalidRange,
    NotFound,
    SequenceOverflow,
    StorageError,
    ValidationFailure,
)
from hns.services.generator_service import HostnameGenerator
from hns.services.persistence_service import JsonReservationBackend
from hns.services.reservation_service import ReservationService
from hns.services.sequence_service import SequenceAllocator

from conftest import SERVER_PARAMS


def test_reserve_candidate_allocates_and_records(reservations):
    reservation, candidate = reservations.reserve_candidate(1, SERVER_PARAMS)
    assert reservation.hostname == candidate.hostname == "USNYCWEB001"
    assert reservation.sequence_num == 1
    assert reservations.get(reservation.id) is reservation
    assert reservations.list(1) == [reservation]
    assert reservations.list(2) == []


def test_pair_can_be_reserved_once(reservations):
    first = reservations.reserve(1, 5, "USNYCWEB005")
    with pytest.raises(AlreadyReserved):
        reservations.reserve(1, 5, "USNYCWEB005")
    assert reservations.list() == [first]


def test_overflow_creates_no_reservation(reservations, allocator):
    allocator.seed(1, 999)
    with pytest.raises(SequenceOverflow):
        reservations.reserve_candidate(1, SERVER_PARAMS)
    assert reservations.list() == []


def test_reserve_issued_sequence_number(reservations, generator):
    generator.assemble(1, SERVER_PARAMS)
    issued = generator.assemble(1, SERVER_PARAMS)
    reservation, _ = reservations.reserve_candidate(1, SERVER_PARAMS, issued.sequence_num)
    assert reservation.hostname == issued.hostname
    with pytest.raises(AlreadyReserved):
        reservations.reserve_candidate(1, SERVER_PARAMS, issued.sequence_num)


def test_reserve_unissued_sequence_number_is_rejected(reservations):
    with pytest.raises(ValidationFailure):
        reservations.reserve_candidate(1, SERVER_PARAMS, 3)


def test_template_without_sequence_cannot_be_reserved(reservations):
    with pytest.raises(ValidationFailure):
        reservations.reserve_candidate(3, {})


def test_unknown_reservation(reservations):
    with pytest.raises(NotFound):
        reservations.get("does-not-exist")


def test_sequence_gaps(reservations):
    for seq in (2, 3, 6, 9):
        reservations.reserve(1, seq, f"USNYCWEB00{seq}")
    assert reservations.find_sequence_gaps(1) == [4, 5, 7, 8]
    assert reservations.find_sequence_gaps(1, max_gaps=2) == [4, 5]
    assert reservations.find_sequence_gaps(2) == []


def test_reservations_survive_restart(tmp_path, store):
    db_file = tmp_path / "reservations.json"
    allocator = SequenceAllocator()
    service = ReservationService(HostnameGenerator(store, allocator), allocator, JsonReservationBackend(db_file))
    service.load()
    saved, _ = service.reserve_candidate(1, SERVER_PARAMS)
    HostnameGenerator(store, allocator).assemble(1, SERVER_PARAMS)
    service.save()

    data = json.loads(db_file.read_text())
    assert data["sequence_counters"] == {"1": 2}
    assert data["reservations"][0]["hostname"] == "USNYCWEB001"

    allocator = SequenceAllocator()
    restarted = ReservationService(HostnameGenerator(store, allocator), allocator, JsonReservationBackend(db_file))
    restarted.load()
    assert restarted.get(saved.id).hostname == "USNYCWEB001"
    assert allocator.peek(1) == 3
    reservation, _ = restarted.reserve_candidate(1, SERVER_PARAMS)
    assert reservation.hostname == "USNYCWEB003"


def test_counter_is_seeded_from_reservations(tmp_path, store):
    db_file = tmp_path / "reservations.json"
    db_file.write_text(json.dumps({
        "reservations": [{
            "id": "abc",
            "template_id": 2,
            "sequence_num": 41,
            "hostname": "lab-0041",
            "created_at": "2024-01-01T00:00:00Z",
        }],
        "sequence_counters": {},
    }))
    allocator = SequenceAllocator()
    service = ReservationService(HostnameGenerator(store, allocator), allocator, JsonReservationBackend(db_file))
    service.load()
    assert allocator.current(2) == 41


def test_corrupt_database_fails_to_load(tmp_path, store):
    db_file = tmp_path / "reservations.json"
    db_file.write_text("{not json")
    allocator = SequenceAllocator()
    service = ReservationService(HostnameGenerator(store, allocator), allocator, JsonReservationBackend(db_file))
    with pytest.raises(StorageError):
        service.load()


def _services(store, db_file):
    backend = JsonReservationBackend(db_file)
    allocator = SequenceAllocator(on_issue=backend.claim)
    generator = HostnameGenerator(store, allocator)
    service = ReservationService(generator, allocator, backend)
    service.load()
    return generator, service


def test_issued_numbers_survive_unclean_restart(tmp_path, store):
    db_file = tmp_path / "reservations.json"
    generator, service = _services(store, db_file)
    service.reserve_candidate(2, {})
    issued = generator.assemble(2, {})
    assert issued.hostname == "lab-0002"

    # no save(): the process stops without its shutdown hook
    generator, _ = _services(store, db_file)
    assert generator.assemble(2, {}).hostname == "lab-0003"


def test_storage_failure_leaves_no_reservation(tmp_path, store, monkeypatch):
    def disk_full(db_file, db):
        raise OSError(28, "No space left on device")

    generator, service = _services(store, tmp_path / "reservations.json")
    monkeypatch.setattr("hns.services.persistence_service.save_reservations_db", disk_full)

    with pytest.raises(StorageError):
        service.reserve(2, 1, "lab-0001")
    with pytest.raises(StorageError):
        generator.assemble(2, {})
    assert service.list() == []
    assert generator.allocator.current(2) == 0


def test_concurrent_reserve_of_one_pair(reservations):
    outcomes = []
    collected = threading.Lock()
    start = threading.Barrier(20)

    def worker():
        start.wait()
        try:
            reservations.reserve(2, 7, "lab-0007")
            outcome = "reserved"
        except AlreadyReserved:
            outcome = "taken"
        with collected:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("reserved") == 1
    assert outcomes.count("taken") == 19
    assert len(reservations.list(2)) == 1


def test_sequence_usage(reservations, generator):
    for _ in range(5):
        generator.assemble(2, {})
    for seq in (2, 5):
        reservations.reserve(2, seq, f"lab-{seq:04d}")

    usage = reservations.sequence_usage(2)
    assert usage.to_dict() == {
        "template_id": 2,
        "total_sequences": 9999,
        "used_sequences": 2,
        "next_sequence": 6,
        "highest_sequence": 5,
        "lowest_sequence": 2,
        "available_sequences": 9994,
    }


def test_sequence_usage_without_reservations(reservations):
    usage = reservations.sequence_usage(1)
    assert usage.used_sequences == 0
    assert usage.highest_sequence is None
    assert usage.next_sequence == 1
    assert usage.total_sequences == 999


def test_sequence_usage_needs_sequence_group(reservations):
    with pytest.raises(InvalidRange):
        reservations.sequence_usage(3)
