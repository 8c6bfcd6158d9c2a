"""
DNS verification service.

Resolves a hostname's A record to tell whether the name is already in use.
"""
import logging
from typing import List, Optional

import dns.asyncresolver
import dns.exception
import dns.resolver

from ..models.errors import ResolverError, ValidationFailure
from ..models.hostname import DNSVerificationResult, utcnow
from ..utils.naming import qualify_hostname

logger = logging.getLogger(__name__)


class DNSChecker:
    """Async A-record lookups against the configured nameservers."""

    def __init__(self, servers: Optional[List[str]] = None, timeout: float = 5.0, domain_suffix: str = ""):
        self.servers = list(servers or [])
        self.timeout = timeout
        self.domain_suffix = domain_suffix
        self.resolver = self._build_resolver()

    def _build_resolver(self) -> dns.asyncresolver.Resolver:
        if self.servers:
            resolver = dns.asyncresolver.Resolver(configure=False)
            resolver.nameservers = self.servers
        else:
            resolver = dns.asyncresolver.Resolver()
        resolver.timeout = self.timeout
        resolver.lifetime = self.timeout
        return resolver

    async def check(self, hostname: str) -> DNSVerificationResult:
        """Check whether ``hostname`` resolves.

        NXDOMAIN and an answer without A records both count as "does not exist".

        Raises:
            ValidationFailure: empty hostname
            ResolverError: timeout, no reachable nameserver or any other DNS failure
        """
        if not hostname or not hostname.strip():
            raise ValidationFailure("hostname", "hostname is empty")
        qname = qualify_hostname(hostname, self.domain_suffix)
        result = DNSVerificationResult(hostname=hostname, exists=False, verified_at=utcnow())

        try:
            answer = await self.resolver.resolve(qname, "A")
        except dns.resolver.NXDOMAIN:
            return result
        except dns.resolver.NoAnswer:
            return result
        except dns.exception.Timeout as exc:
            logger.warning("DNS query timed out | hostname=%s", qname)
            raise ResolverError(hostname, f"timeout after {self.timeout}s") from exc
        except dns.exception.DNSException as exc:
            logger.warning("DNS query failed | hostname=%s error=%s", qname, exc)
            raise ResolverError(hostname, str(exc) or exc.__class__.__name__) from exc

        for rdata in answer:
            result.exists = True
            result.ip_address = rdata.address
            break
        return result
