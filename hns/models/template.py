"""
Template data models for the Hostname Naming Service.

A template is an ordered list of groups; each group carries exactly one
validation rule. Rules are parsed from their wire form (``validation_type`` +
``validation_value``) once, when templates are loaded, so a bad definition
fails at load time instead of on every request.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Tuple, Union

from ..config import DEFAULT_MAX_HOSTNAME_LENGTH
from ..utils.naming import split_allowed_values
from .errors import TemplateConfigError


class ValidationType(Enum):
    """Supported group validation types."""
    FIXED = "fixed"
    LIST = "list"
    REGEX = "regex"
    SEQUENCE = "sequence"


@dataclass(frozen=True)
class FixedRule:
    """Group value is a literal."""
    value: str


@dataclass(frozen=True)
class ListRule:
    """Group value is one of a closed set."""
    allowed: Tuple[str, ...]
    case_sensitive: bool = True

    def match(self, value: str) -> Optional[str]:
        """Return the canonical allowed entry for ``value`` or None."""
        if self.case_sensitive:
            return value if value in self.allowed else None
        folded = value.casefold()
        for entry in self.allowed:
            if entry.casefold() == folded:
                return entry
        return None


@dataclass(frozen=True)
class RegexRule:
    """Group value must fully match a compiled pattern."""
    pattern: Pattern


@dataclass(frozen=True)
class SequenceRule:
    """Group value is issued by the sequence allocator."""


Rule = Union[FixedRule, ListRule, RegexRule, SequenceRule]


@dataclass(frozen=True)
class TemplateGroup:
    name: str
    length: int
    is_required: bool
    rule: Rule

    @property
    def validation_type(self) -> ValidationType:
        if isinstance(self.rule, FixedRule):
            return ValidationType.FIXED
        if isinstance(self.rule, ListRule):
            return ValidationType.LIST
        if isinstance(self.rule, RegexRule):
            return ValidationType.REGEX
        return ValidationType.SEQUENCE

    @property
    def is_sequence(self) -> bool:
        return isinstance(self.rule, SequenceRule)


@dataclass(frozen=True)
class Template:
    id: int
    name: str
    groups: Tuple[TemplateGroup, ...]
    description: str = ""
    max_length: int = DEFAULT_MAX_HOSTNAME_LENGTH
    _by_name: Dict[str, TemplateGroup] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        """Index groups by name."""
        object.__setattr__(self, "_by_name", {g.name: g for g in self.groups})

    @property
    def sequence_group(self) -> Optional[TemplateGroup]:
        for group in self.groups:
            if group.is_sequence:
                return group
        return None

    def group(self, name: str) -> Optional[TemplateGroup]:
        return self._by_name.get(name)


def parse_rule(template_ref: Any, raw: Dict[str, Any], length: int) -> Rule:
    """Translate a group's wire-form validation into a rule.

    Raises:
        TemplateConfigError: on an unknown type, malformed pattern or a value
            that can never fit the group length
    """
    name = raw.get("name")
    kind = str(raw.get("validation_type") or "").strip().lower()
    value = raw.get("validation_value")
    value = "" if value is None else str(value)

    try:
        vtype = ValidationType(kind)
    except ValueError:
        raise TemplateConfigError(template_ref, f"group '{name}': unknown validation type '{kind}'")

    if vtype is ValidationType.FIXED:
        if len(value) != length:
            raise TemplateConfigError(
                template_ref, f"group '{name}': fixed value '{value}' must be exactly {length} characters"
            )
        return FixedRule(value)

    if vtype is ValidationType.LIST:
        allowed = split_allowed_values(value)
        if not allowed:
            raise TemplateConfigError(template_ref, f"group '{name}': list has no allowed values")
        too_long = [a for a in allowed if len(a) > length]
        if too_long:
            raise TemplateConfigError(
                template_ref, f"group '{name}': allowed values {too_long} exceed length {length}"
            )
        return ListRule(tuple(allowed), bool(raw.get("case_sensitive", True)))

    if vtype is ValidationType.REGEX:
        if not value:
            raise TemplateConfigError(template_ref, f"group '{name}': regex group needs a pattern")
        try:
            return RegexRule(re.compile(value))
        except re.error as exc:
            raise TemplateConfigError(template_ref, f"group '{name}': malformed pattern '{value}': {exc}")

    return SequenceRule()


def template_from_dict(raw: Dict[str, Any]) -> Template:
    """Build and validate a Template from its JSON form.

    Raises:
        TemplateConfigError: if the template breaks any structural invariant
    """
    if not isinstance(raw, dict):
        raise TemplateConfigError(None, "template entry must be a JSON object")
    try:
        template_id = int(raw["id"])
    except (KeyError, TypeError, ValueError):
        raise TemplateConfigError(raw.get("name"), "template needs an integer 'id'")
    name = str(raw.get("name") or "").strip()
    if not name:
        raise TemplateConfigError(template_id, "template needs a name")

    groups: List[TemplateGroup] = []
    seen = set()
    raw_groups = raw.get("groups") or []
    if not isinstance(raw_groups, list):
        raise TemplateConfigError(template_id, "'groups' must be a list")
    for raw_group in raw_groups:
        if not isinstance(raw_group, dict):
            raise TemplateConfigError(template_id, "group entry must be a JSON object")
        group_name = str(raw_group.get("name") or "").strip()
        if not group_name:
            raise TemplateConfigError(template_id, "every group needs a name")
        if group_name in seen:
            raise TemplateConfigError(template_id, f"duplicate group name '{group_name}'")
        seen.add(group_name)
        try:
            length = int(raw_group.get("length"))
        except (TypeError, ValueError):
            length = 0
        if length <= 0:
            raise TemplateConfigError(template_id, f"group '{group_name}': length must be positive")
        groups.append(TemplateGroup(
            name=group_name,
            length=length,
            is_required=bool(raw_group.get("is_required", False)),
            rule=parse_rule(template_id, raw_group, length),
        ))

    if not groups:
        raise TemplateConfigError(template_id, "template has no groups")
    if sum(1 for g in groups if g.is_sequence) > 1:
        raise TemplateConfigError(template_id, "at most one sequence group is allowed")

    try:
        max_length = int(raw.get("max_length") or DEFAULT_MAX_HOSTNAME_LENGTH)
    except (TypeError, ValueError):
        raise TemplateConfigError(template_id, f"max_length must be an integer (got {raw.get('max_length')!r})")
    if max_length <= 0:
        raise TemplateConfigError(template_id, "max_length must be positive")
    total = sum(g.length for g in groups)
    if total > max_length:
        raise TemplateConfigError(
            template_id, f"sum of group lengths ({total}) exceeds max length ({max_length})"
        )

    return Template(
        id=template_id,
        name=name,
        groups=tuple(groups),
        description=str(raw.get("description") or ""),
        max_length=max_length,
    )


def group_to_dict(group: TemplateGroup) -> Dict[str, Any]:
    rule = group.rule
    if isinstance(rule, FixedRule):
        value = rule.value
    elif isinstance(rule, ListRule):
        value = ",".join(rule.allowed)
    elif isinstance(rule, RegexRule):
        value = rule.pattern.pattern
    else:
        value = None
    data = {
        "name": group.name,
        "length": group.length,
        "is_required": group.is_required,
        "validation_type": group.validation_type.value,
        "validation_value": value,
    }
    if isinstance(rule, ListRule):
        data["case_sensitive"] = rule.case_sensitive
    return data


def template_to_dict(template: Template) -> Dict[str, Any]:
    """Wire form consumed by the front-end."""
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "max_length": template.max_length,
        "groups": [group_to_dict(g) for g in template.groups],
    }
