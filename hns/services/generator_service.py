"""
Hostname generation service.

Assembles hostnames from a template and a parameter set. ``assemble`` draws a
fresh sequence number from the allocator; ``render`` builds the same string
for a given sequence value without touching the allocator.
"""
import logging
from typing import Mapping, Optional, Union

from ..models.errors import InvalidRange, SequenceOverflow
from ..models.hostname import HostnameCandidate
from ..models.template import Template
from ..utils.naming import format_sequence
from .sequence_service import SequenceAllocator
from .template_service import TemplateStore
from .validation_service import validate_params

logger = logging.getLogger(__name__)

Params = Optional[Mapping[str, Optional[str]]]


class HostnameGenerator:
    def __init__(self, templates: TemplateStore, allocator: SequenceAllocator):
        self.templates = templates
        self.allocator = allocator

    def _resolve(self, template: Union[int, Template]) -> Template:
        if isinstance(template, Template):
            return template
        return self.templates.get(int(template))

    def assemble(self, template: Union[int, Template], params: Params) -> HostnameCandidate:
        """Validate params and build a candidate with the next sequence number.

        All groups are validated before the allocator is called, so a rejected
        request never consumes a sequence number.

        Raises:
            NotFound: unknown template id
            MissingParameter, UnexpectedParameter, ValidationFailure: bad params
            SequenceOverflow: the issued value no longer fits the sequence group
        """
        tmpl = self._resolve(template)
        is_valid, error, rendered = validate_params(tmpl, params)
        if not is_valid:
            raise error

        sequence_num = None
        seq_group = tmpl.sequence_group
        if seq_group is not None:
            sequence_num = self.allocator.next(tmpl.id)
            padded = format_sequence(sequence_num, seq_group.length)
            if padded is None:
                logger.error(
                    "Sequence overflow on template %s (%s): value %d exceeds %d digits",
                    tmpl.id, tmpl.name, sequence_num, seq_group.length,
                )
                raise SequenceOverflow(tmpl.id, sequence_num, seq_group.length)
            rendered[seq_group.name] = padded

        return self._build(tmpl, rendered, sequence_num)

    def render(self, template: Union[int, Template], params: Params, sequence_num: int) -> HostnameCandidate:
        """Build the candidate for an explicit sequence value. Never calls the allocator.

        Raises:
            InvalidRange: negative value, too many digits, or no sequence group
        """
        tmpl = self._resolve(template)
        is_valid, error, rendered = validate_params(tmpl, params)
        if not is_valid:
            raise error

        seq_group = tmpl.sequence_group
        if seq_group is None:
            raise InvalidRange(f"template {tmpl.id} has no sequence group")
        if sequence_num < 0:
            raise InvalidRange(f"sequence value {sequence_num} is negative")
        padded = format_sequence(sequence_num, seq_group.length)
        if padded is None:
            raise InvalidRange(
                f"sequence value {sequence_num} does not fit in {seq_group.length} digits"
            )
        rendered[seq_group.name] = padded
        return self._build(tmpl, rendered, sequence_num)

    @staticmethod
    def _build(template: Template, rendered: dict, sequence_num: Optional[int]) -> HostnameCandidate:
        parts = tuple((group.name, rendered[group.name]) for group in template.groups)
        return HostnameCandidate(
            template_id=template.id,
            hostname="".join(value for _, value in parts),
            parts=parts,
            sequence_num=sequence_num,
        )
