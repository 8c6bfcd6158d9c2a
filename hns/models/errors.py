"""
Error taxonomy for the Hostname Naming Service.

Every error carries a machine-readable ``kind`` and the HTTP status the API
answers with; ``str(error)`` is the human-readable message.
"""
from typing import Optional


class HostnameError(Exception):
    """Base class for all service errors."""
    kind = "error"
    status_code = 500

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind}


class NotFound(HostnameError):
    kind = "not_found"
    status_code = 404


class ValidationFailure(HostnameError):
    """A value violates its group's rule."""
    kind = "validation_failure"
    status_code = 400

    def __init__(self, group: str, reason: str):
        self.group = group
        self.reason = reason
        super().__init__(f"group '{group}': {reason}")


class MissingParameter(HostnameError):
    kind = "missing_parameter"
    status_code = 400

    def __init__(self, group: str):
        self.group = group
        super().__init__(f"missing required parameter '{group}'")


class UnexpectedParameter(HostnameError):
    kind = "unexpected_parameter"
    status_code = 400

    def __init__(self, name: str, reason: str = "not accepted by this template"):
        self.name = name
        super().__init__(f"unexpected parameter '{name}': {reason}")


class SequenceOverflow(HostnameError):
    """The allocator issued a value wider than the template's sequence group.

    Fatal for the template: every later value is wider still, so an operator
    has to widen or rotate the template.
    """
    kind = "sequence_overflow"
    status_code = 409

    def __init__(self, template_id: int, value: int, length: int):
        self.template_id = template_id
        self.value = value
        self.length = length
        super().__init__(
            f"template {template_id}: sequence value {value} does not fit in {length} digits"
        )


class AlreadyReserved(HostnameError):
    kind = "already_reserved"
    status_code = 409

    def __init__(self, template_id: int, sequence_num: int):
        self.template_id = template_id
        self.sequence_num = sequence_num
        super().__init__(f"sequence {sequence_num} of template {template_id} is already reserved")


class InvalidRange(HostnameError):
    kind = "invalid_range"
    status_code = 400


class ResolverError(HostnameError):
    """A single DNS lookup failed. Inside a scan this is recorded per entry."""
    kind = "resolver_error"
    status_code = 502

    def __init__(self, hostname: str, reason: str):
        self.hostname = hostname
        self.reason = reason
        super().__init__(f"DNS lookup for '{hostname}' failed: {reason}")


class TemplateConfigError(HostnameError):
    """A template definition is invalid; raised while loading templates."""
    kind = "template_config"
    status_code = 500

    def __init__(self, template: Optional[object], reason: str):
        self.template = template
        prefix = f"template {template}: " if template is not None else ""
        super().__init__(f"{prefix}{reason}")


class StorageError(HostnameError):
    """The reservation database could not be read or written."""
    kind = "storage_error"
    status_code = 500
