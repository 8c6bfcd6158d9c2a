import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

# Import configuration
from .config import (
    APP_TITLE, HOST, PORT,
    TEMPLATES_FILE, RESERVATIONS_DB_FILE,
    DNS_SERVERS, DNS_TIMEOUT, DNS_DOMAIN_SUFFIX,
    SCAN_DEFAULT_CONCURRENT, SCAN_MAX_CONCURRENT, SCAN_MAX_HOSTNAMES, SCAN_TIMEOUT,
    LOG_LEVEL, LOG_FILE,
)

# Import models and utilities
from .models.errors import HostnameError, ResolverError
from .models.hostname import isoformat, utcnow
from .models.template import template_to_dict
from .utils.log import setup_logging

# Import services
from .services.template_service import TemplateStore
from .services.sequence_service import SequenceAllocator
from .services.generator_service import HostnameGenerator
from .services.persistence_service import JsonReservationBackend
from .services.reservation_service import ReservationService
from .services.dns_service import DNSChecker
from .services.scanner_service import DNSScanner

logger = logging.getLogger(__name__)


class GenerateRequest(BaseModel):
    template_id: int
    params: Dict[str, Optional[str]] = Field(default_factory=dict)
    check_dns: bool = False


class ReserveRequest(BaseModel):
    template_id: int
    params: Dict[str, Optional[str]] = Field(default_factory=dict)
    sequence_num: Optional[int] = None


class ScanRequest(BaseModel):
    template_id: int
    start_seq: int = 1
    end_seq: int = 10
    max_concurrent: int = SCAN_DEFAULT_CONCURRENT
    params: Dict[str, Optional[str]] = Field(default_factory=dict)


class DiscoverRequest(BaseModel):
    template_id: int
    start_seq: int = 1
    params: Dict[str, Optional[str]] = Field(default_factory=dict)


def create_app(
    templates: Optional[TemplateStore] = None,
    templates_file: Path = TEMPLATES_FILE,
    reservations_file: Optional[Path] = RESERVATIONS_DB_FILE,
    checker: Optional[DNSChecker] = None,
) -> FastAPI:
    """Build the API. Services are created once in the lifespan and kept on ``app.state``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Handle application startup and shutdown events"""
        setup_logging(LOG_LEVEL, LOG_FILE)
        store = templates if templates is not None else TemplateStore.load(templates_file)
        backend = JsonReservationBackend(reservations_file) if reservations_file else None
        # Issued numbers reach disk before they are returned
        allocator = SequenceAllocator(on_issue=backend.claim if backend else None)
        generator = HostnameGenerator(store, allocator)
        reservations = ReservationService(generator, allocator, backend)
        reservations.load()
        dns_checker = checker or DNSChecker(DNS_SERVERS, DNS_TIMEOUT, DNS_DOMAIN_SUFFIX)

        app.state.templates = store
        app.state.allocator = allocator
        app.state.generator = generator
        app.state.reservations = reservations
        app.state.dns_checker = dns_checker
        app.state.scanner = DNSScanner(
            generator, dns_checker,
            lookup_timeout=DNS_TIMEOUT,
            max_concurrent_limit=SCAN_MAX_CONCURRENT,
            max_hostnames=SCAN_MAX_HOSTNAMES,
            scan_timeout=SCAN_TIMEOUT,
        )
        logger.info("%s started with %d templates", APP_TITLE, len(store))

        yield  # Application runs here

        # Shutdown: write a final snapshot of reservations and counters
        reservations.save()
        logger.info("Application shutting down")

    app = FastAPI(title=APP_TITLE, lifespan=lifespan)

    @app.exception_handler(HostnameError)
    async def hostname_error_handler(request: Request, exc: HostnameError):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        messages = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
        return JSONResponse({"error": "; ".join(messages), "kind": "invalid_request"}, status_code=422)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "internal server error", "kind": "internal"}, status_code=500)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/templates")
    def list_templates(request: Request):
        items = [template_to_dict(t) for t in request.app.state.templates.list()]
        return {"templates": items, "total": len(items)}

    @app.get("/api/templates/{template_id}")
    def get_template(template_id: int, request: Request):
        return template_to_dict(request.app.state.templates.get(template_id))

    @app.post("/api/hostnames/generate")
    async def generate_hostname(payload: GenerateRequest, request: Request):
        candidate = request.app.state.generator.assemble(payload.template_id, payload.params)
        response = {
            "hostname": candidate.hostname,
            "sequence_num": candidate.sequence_num,
            "template_id": candidate.template_id,
            "params": candidate.params,
        }
        if payload.check_dns:
            try:
                result = await request.app.state.dns_checker.check(candidate.hostname)
                response["dns_check"] = result.to_dict()
            except ResolverError as exc:
                logger.warning("DNS check failed for generated hostname %s: %s", candidate.hostname, exc)
                response["dns_check"] = {
                    "hostname": candidate.hostname,
                    "exists": None,
                    "ip_address": None,
                    "verified_at": isoformat(utcnow()),
                    "error": exc.reason,
                }
        return response

    @app.post("/api/hostnames/reserve", status_code=201)
    def reserve_hostname(payload: ReserveRequest, request: Request):
        reservation, _ = request.app.state.reservations.reserve_candidate(
            payload.template_id, payload.params, payload.sequence_num
        )
        return reservation.to_dict()

    @app.get("/api/hostnames")
    def list_hostnames(request: Request, template_id: Optional[int] = None):
        items = [r.to_dict() for r in request.app.state.reservations.list(template_id)]
        return {"hostnames": items, "total": len(items)}

    @app.get("/api/hostnames/{reservation_id}")
    def get_hostname(reservation_id: str, request: Request):
        return request.app.state.reservations.get(reservation_id).to_dict()

    @app.get("/api/sequences/next/{template_id}")
    def next_sequence(template_id: int, request: Request):
        template = request.app.state.templates.get(template_id)
        return {"template_id": template.id, "sequence_num": request.app.state.allocator.peek(template.id)}

    @app.get("/api/sequences/gaps/{template_id}")
    def sequence_gaps(template_id: int, request: Request, max_gaps: int = 100):
        template = request.app.state.templates.get(template_id)
        gaps = request.app.state.reservations.find_sequence_gaps(template.id, max(0, max_gaps))
        return {"template_id": template.id, "gaps": gaps}

    @app.get("/api/sequences/usage/{template_id}")
    def sequence_usage(template_id: int, request: Request):
        return request.app.state.reservations.sequence_usage(template_id).to_dict()

    @app.get("/api/dns/check/{hostname}")
    async def check_hostname(hostname: str, request: Request):
        result = await request.app.state.dns_checker.check(hostname)
        return result.to_dict()

    @app.post("/api/dns/scan")
    async def scan_dns(payload: ScanRequest, request: Request):
        report = await request.app.state.scanner.scan(
            payload.template_id,
            payload.params,
            payload.start_seq,
            payload.end_seq,
            payload.max_concurrent,
        )
        return report.to_dict()

    @app.post("/api/dns/discover")
    async def discover_sequence_range(payload: DiscoverRequest, request: Request):
        found = await request.app.state.scanner.discover_range(
            payload.template_id, payload.params, payload.start_seq
        )
        return found.to_dict()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("hns.main:app", host=HOST, port=PORT, reload=False)
