"""
DNS scan service.

Looks up the hostnames a template would produce over a range of sequence
values. Candidates are rendered without touching the sequence allocator, so
a scan has no side effects on allocation.

Concurrency: a semaphore slot is acquired before each lookup task is
created, so at most ``max_concurrent`` lookups are in flight. Cancellation
(caller event or total time budget) stops dispatching; lookups already in
flight finish, each bounded by the per-lookup timeout, and the partial report
is returned flagged ``cancelled``.

Range discovery walks the same rendered candidates one lookup at a time to
find the block of sequence values already in DNS.
"""
import asyncio
import logging
import time
from typing import List, Mapping, Optional

from ..models.errors import InvalidRange, ResolverError
from ..models.hostname import HostnameCandidate, ScanEntry, ScanReport, SequenceRange, utcnow
from ..utils.naming import sequence_capacity
from .dns_service import DNSChecker
from .generator_service import HostnameGenerator

logger = logging.getLogger(__name__)


class DNSScanner:
    def __init__(
        self,
        generator: HostnameGenerator,
        checker: DNSChecker,
        lookup_timeout: float = 5.0,
        max_concurrent_limit: int = 50,
        max_hostnames: int = 5000,
        scan_timeout: Optional[float] = None,
    ):
        self.generator = generator
        self.checker = checker
        self.lookup_timeout = lookup_timeout
        self.max_concurrent_limit = max_concurrent_limit
        self.max_hostnames = max_hostnames
        self.scan_timeout = scan_timeout

    def _check_options(self, start_seq: int, end_seq: int, max_concurrent: int) -> None:
        if start_seq < 0:
            raise InvalidRange(f"start_seq must not be negative (got {start_seq})")
        if start_seq > end_seq:
            raise InvalidRange(f"start_seq ({start_seq}) must not exceed end_seq ({end_seq})")
        if max_concurrent < 1:
            raise InvalidRange(f"max_concurrent must be at least 1 (got {max_concurrent})")
        if max_concurrent > self.max_concurrent_limit:
            raise InvalidRange(
                f"max_concurrent must not exceed {self.max_concurrent_limit} (got {max_concurrent})"
            )
        count = end_seq - start_seq + 1
        if count > self.max_hostnames:
            raise InvalidRange(f"a scan covers at most {self.max_hostnames} hostnames (got {count})")

    def build_candidates(
        self,
        template_id: int,
        params: Optional[Mapping[str, Optional[str]]],
        start_seq: int,
        end_seq: int,
    ) -> List[HostnameCandidate]:
        template = self.generator.templates.get(template_id)
        seq_group = template.sequence_group
        if seq_group is None:
            raise InvalidRange(f"template {template.id} has no sequence group to scan")
        if end_seq > sequence_capacity(seq_group.length):
            raise InvalidRange(
                f"end_seq {end_seq} does not fit the {seq_group.length}-digit sequence group"
            )
        return [self.generator.render(template, params, seq) for seq in range(start_seq, end_seq + 1)]

    async def _lookup(self, candidate: HostnameCandidate, slot: asyncio.Semaphore) -> ScanEntry:
        entry = ScanEntry(hostname=candidate.hostname, sequence_num=candidate.sequence_num)
        try:
            result = await asyncio.wait_for(self.checker.check(candidate.hostname), self.lookup_timeout)
            entry.exists = result.exists
            entry.ip_address = result.ip_address
            entry.verified_at = result.verified_at
        except asyncio.TimeoutError:
            entry.error = f"lookup timed out after {self.lookup_timeout}s"
            entry.verified_at = utcnow()
        except ResolverError as exc:
            entry.error = exc.reason
            entry.verified_at = utcnow()
        except Exception as exc:
            logger.exception("Unexpected lookup failure | hostname=%s", candidate.hostname)
            entry.error = str(exc) or exc.__class__.__name__
            entry.verified_at = utcnow()
        finally:
            slot.release()
        return entry

    async def scan(
        self,
        template_id: int,
        params: Optional[Mapping[str, Optional[str]]],
        start_seq: int,
        end_seq: int,
        max_concurrent: int,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> ScanReport:
        """Scan ``[start_seq, end_seq]`` and return a report ordered by sequence number.

        Raises:
            InvalidRange: bad range, concurrency limit or template without sequence
            NotFound: unknown template
            MissingParameter, UnexpectedParameter, ValidationFailure: bad params
        """
        self._check_options(start_seq, end_seq, max_concurrent)
        template = self.generator.templates.get(template_id)
        candidates = self.build_candidates(template.id, params, start_seq, end_seq)

        budget = timeout if timeout is not None else self.scan_timeout
        started = time.monotonic()
        deadline = started + budget if budget is not None else None
        report = ScanReport(template_id=template.id, template_name=template.name)
        logger.info(
            "Scan started | template=%s range=%d-%d max_concurrent=%d",
            template.id, start_seq, end_seq, max_concurrent,
        )

        slot = asyncio.Semaphore(max_concurrent)
        tasks: List[asyncio.Task] = []
        try:
            for candidate in candidates:
                await slot.acquire()
                stop = (cancel_event is not None and cancel_event.is_set()) or (
                    deadline is not None and time.monotonic() >= deadline
                )
                if stop:
                    slot.release()
                    report.cancelled = True
                    break
                tasks.append(asyncio.create_task(self._lookup(candidate, slot)))
            entries = await asyncio.gather(*tasks) if tasks else []
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        report.results = sorted(entries, key=lambda e: e.sequence_num)
        report.elapsed = time.monotonic() - started
        logger.info(
            "Scan finished | template=%s checked=%d existing=%d failed=%d cancelled=%s duration=%s",
            template.id, report.total_hostnames, report.existing_hostnames,
            report.failed_hostnames, report.cancelled, report.scan_duration,
        )
        return report

    async def discover_range(
        self,
        template_id: int,
        params: Optional[Mapping[str, Optional[str]]],
        start_seq: int = 1,
        window: int = 10,
        coarse_step: int = 100,
        search_limit: int = 1000,
        miss_limit: int = 10,
    ) -> SequenceRange:
        """Find the block of sequence values whose hostnames resolve.

        Checks ``start_seq`` onward one by one for ``window`` values, then
        every ``coarse_step`` values up to ``search_limit`` past the start. From
        the first hit it walks down while names resolve and walks up until
        ``miss_limit`` consecutive misses. Failed lookups count as misses.
        Lookups run one at a time and never touch the allocator.

        Raises:
            InvalidRange: negative start, start beyond the sequence group, or no sequence group
            NotFound: unknown template
            MissingParameter, UnexpectedParameter, ValidationFailure: bad params
        """
        template = self.generator.templates.get(template_id)
        seq_group = template.sequence_group
        if seq_group is None:
            raise InvalidRange(f"template {template.id} has no sequence group to scan")
        if start_seq < 0:
            raise InvalidRange(f"start_seq must not be negative (got {start_seq})")
        ceiling = sequence_capacity(seq_group.length)
        if start_seq > ceiling:
            raise InvalidRange(f"start_seq {start_seq} does not fit the {seq_group.length}-digit sequence group")
        self.generator.render(template, params, start_seq)

        report = SequenceRange(template_id=template.id)

        async def resolves(seq: int) -> bool:
            report.lookups += 1
            hostname = self.generator.render(template, params, seq).hostname
            try:
                result = await asyncio.wait_for(self.checker.check(hostname), self.lookup_timeout)
            except (asyncio.TimeoutError, ResolverError) as exc:
                logger.debug("Discovery lookup failed | hostname=%s error=%s", hostname, exc)
                return False
            return result.exists

        limit = min(ceiling, start_seq + search_limit)
        first = None
        for seq in range(start_seq, min(limit, start_seq + window) + 1):
            if await resolves(seq):
                first = seq
                break
        if first is None:
            for seq in range(start_seq + coarse_step, limit + 1, coarse_step):
                if await resolves(seq):
                    first = seq
                    break
        if first is None:
            logger.info("Range discovery found nothing | template=%s lookups=%d", template.id, report.lookups)
            return report

        lowest = first
        while lowest - 1 >= start_seq and await resolves(lowest - 1):
            lowest -= 1

        highest = first
        misses = 0
        seq = first + 1
        upper = min(ceiling, first + search_limit)
        while seq <= upper and misses < miss_limit:
            if await resolves(seq):
                highest = seq
                misses = 0
            else:
                misses += 1
            seq += 1

        report.lowest_sequence = lowest
        report.highest_sequence = highest
        logger.info(
            "Range discovery finished | template=%s range=%d-%d lookups=%d",
            template.id, lowest, highest, report.lookups,
        )
        return report
