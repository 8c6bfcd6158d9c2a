"""
Reservation service for generated hostnames.

A reservation commits a (template, sequence number) pair permanently. The
store is append-only: there is no update or delete path, and a pair can be
reserved exactly once.
"""
import logging
import threading
import uuid
from typing import Dict, List, Mapping, Optional, Tuple

from ..models.errors import AlreadyReserved, InvalidRange, NotFound, ValidationFailure
from ..models.hostname import HostnameCandidate, Reservation, SequenceUsage, utcnow
from ..utils.naming import sequence_capacity
from .generator_service import HostnameGenerator
from .persistence_service import JsonReservationBackend
from .sequence_service import SequenceAllocator

logger = logging.getLogger(__name__)


class ReservationService:
    def __init__(
        self,
        generator: HostnameGenerator,
        allocator: SequenceAllocator,
        backend: Optional[JsonReservationBackend] = None,
    ):
        self.generator = generator
        self.allocator = allocator
        self.backend = backend
        self._lock = threading.Lock()
        self._reservations: List[Reservation] = []
        self._by_pair: Dict[Tuple[int, int], Reservation] = {}
        self._by_id: Dict[str, Reservation] = {}

    def load(self) -> None:
        """Restore reservations and seed the allocator so no issued number is reissued."""
        if self.backend is None:
            return
        reservations, counters = self.backend.load()
        with self._lock:
            for reservation in reservations:
                self._index(reservation)
        for template_id, last in counters.items():
            self.allocator.seed(template_id, last)
        for reservation in reservations:
            self.allocator.seed(reservation.template_id, reservation.sequence_num)

    def save(self) -> None:
        if self.backend is None:
            return
        with self._lock:
            self.backend.save(list(self._reservations), self.allocator.snapshot())

    def _index(self, reservation: Reservation) -> None:
        self._reservations.append(reservation)
        self._by_pair[(reservation.template_id, reservation.sequence_num)] = reservation
        self._by_id[reservation.id] = reservation

    def reserve(self, template_id: int, sequence_num: int, hostname: str) -> Reservation:
        """Reserve a (template, sequence) pair for a hostname.

        Raises:
            AlreadyReserved: the pair is taken; state is left untouched
        """
        with self._lock:
            key = (template_id, sequence_num)
            if key in self._by_pair:
                raise AlreadyReserved(template_id, sequence_num)
            reservation = Reservation(
                id=str(uuid.uuid4()),
                template_id=template_id,
                sequence_num=sequence_num,
                hostname=hostname,
                created_at=utcnow(),
            )
            if self.backend is not None:
                # Persist first: a failed write must not leave a phantom reservation
                self.backend.save(self._reservations + [reservation], self.allocator.snapshot())
            self._index(reservation)

        logger.info(
            "Reserved %s (template=%s sequence=%s id=%s)",
            hostname, template_id, sequence_num, reservation.id,
        )
        return reservation

    def reserve_candidate(
        self,
        template_id: int,
        params: Optional[Mapping[str, Optional[str]]],
        sequence_num: Optional[int] = None,
    ) -> Tuple[Reservation, HostnameCandidate]:
        """Build a candidate and reserve it.

        Without ``sequence_num`` a fresh number is allocated. With it, the
        candidate for that already issued number is rebuilt and reserved.
        """
        template = self.generator.templates.get(template_id)
        if sequence_num is None:
            candidate = self.generator.assemble(template, params)
        else:
            seq_group = template.sequence_group
            if seq_group is not None and not 1 <= sequence_num <= self.allocator.current(template.id):
                raise ValidationFailure(
                    seq_group.name, f"sequence number {sequence_num} has not been issued"
                )
            candidate = self.generator.render(template, params, sequence_num)

        if candidate.sequence_num is None:
            raise ValidationFailure(template.name, "template has no sequence group to reserve")
        reservation = self.reserve(template.id, candidate.sequence_num, candidate.hostname)
        return reservation, candidate

    def get(self, reservation_id: str) -> Reservation:
        reservation = self._by_id.get(reservation_id)
        if reservation is None:
            raise NotFound(f"reservation {reservation_id} not found")
        return reservation

    def list(self, template_id: Optional[int] = None) -> List[Reservation]:
        with self._lock:
            items = list(self._reservations)
        if template_id is not None:
            items = [r for r in items if r.template_id == template_id]
        return items

    def find_sequence_gaps(self, template_id: int, max_gaps: int = 100) -> List[int]:
        """Unreserved sequence numbers between the lowest and highest reserved one."""
        used = sorted(r.sequence_num for r in self.list(template_id))
        if not used:
            return []
        taken = set(used)
        gaps = []
        for value in range(used[0], used[-1] + 1):
            if len(gaps) >= max_gaps:
                break
            if value not in taken:
                gaps.append(value)
        return gaps

    def sequence_usage(self, template_id: int) -> SequenceUsage:
        """Summarize reserved sequence numbers against the group's capacity.

        Raises:
            NotFound: unknown template
            InvalidRange: template has no sequence group
        """
        template = self.generator.templates.get(template_id)
        seq_group = template.sequence_group
        if seq_group is None:
            raise InvalidRange(f"template {template.id} has no sequence group")
        used = [r.sequence_num for r in self.list(template.id)]
        return SequenceUsage(
            template_id=template.id,
            total_sequences=sequence_capacity(seq_group.length),
            used_sequences=len(used),
            next_sequence=self.allocator.peek(template.id),
            highest_sequence=max(used) if used else None,
            lowest_sequence=min(used) if used else None,
        )
