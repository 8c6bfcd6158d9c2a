"""
Parameter validation service for hostname templates.

Checks user-supplied group values against their group's rule and computes the
string each validated value renders as.
"""
from typing import Dict, Mapping, Optional, Tuple

from ..models.errors import (
    HostnameError,
    MissingParameter,
    UnexpectedParameter,
    ValidationFailure,
)
from ..models.template import (
    FixedRule,
    ListRule,
    RegexRule,
    SequenceRule,
    Template,
    TemplateGroup,
)
from ..utils.naming import is_blank


def validate_group_value(
    group: TemplateGroup,
    value: Optional[str],
) -> Tuple[bool, Optional[HostnameError]]:
    """Validate one candidate value against a group's rule.

    Args:
        group: Template group the value belongs to
        value: User-supplied value, or None when the parameter was omitted

    Returns:
        Tuple of (is_valid, error)
    """
    rule = group.rule

    if isinstance(rule, SequenceRule):
        if value is not None:
            return False, UnexpectedParameter(group.name, "sequence values are issued by the allocator")
        return True, None

    if is_blank(value):
        # Fixed groups imply their literal; optional groups render empty
        if group.is_required and not isinstance(rule, FixedRule):
            return False, MissingParameter(group.name)
        return True, None

    if isinstance(rule, FixedRule):
        if value != rule.value:
            return False, ValidationFailure(group.name, f"value '{value}' must equal '{rule.value}'")
        return True, None

    if isinstance(rule, ListRule):
        if rule.match(value.strip()) is None:
            allowed = ", ".join(rule.allowed)
            return False, ValidationFailure(group.name, f"value '{value}' is not one of: {allowed}")
        return True, None

    if isinstance(rule, RegexRule):
        if len(value) != group.length:
            return False, ValidationFailure(
                group.name, f"value '{value}' must be exactly {group.length} characters"
            )
        if rule.pattern.fullmatch(value) is None:
            return False, ValidationFailure(
                group.name, f"value '{value}' does not match pattern '{rule.pattern.pattern}'"
            )
        return True, None

    return False, ValidationFailure(group.name, "unsupported validation rule")


def render_group_value(group: TemplateGroup, value: Optional[str]) -> str:
    """Return the string a validated value renders as.

    Must only be called after ``validate_group_value`` accepted the value.
    """
    rule = group.rule
    if isinstance(rule, FixedRule):
        return rule.value
    if is_blank(value):
        return ""
    if isinstance(rule, ListRule):
        return rule.match(value.strip())
    return value


def validate_params(
    template: Template,
    params: Optional[Mapping[str, Optional[str]]],
) -> Tuple[bool, Optional[HostnameError], Optional[Dict[str, str]]]:
    """Validate a full parameter set against a template, fail-fast in group order.

    Args:
        template: Template whose non-sequence groups are checked
        params: Parameter values keyed by group name

    Returns:
        Tuple of (is_valid, error, rendered values keyed by group name)
    """
    params = params or {}
    for name in params:
        if template.group(name) is None:
            return False, UnexpectedParameter(name), None

    rendered: Dict[str, str] = {}
    for group in template.groups:
        value = params.get(group.name)
        if value is not None and not isinstance(value, str):
            value = str(value)
        is_valid, error = validate_group_value(group, value)
        if not is_valid:
            return False, error, None
        if not group.is_sequence:
            rendered[group.name] = render_group_value(group, value)
    return True, None, rendered
