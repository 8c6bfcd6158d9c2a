"""
Template store for the Hostname Naming Service.

Templates are configuration data maintained outside this service. They are
loaded from a JSON file at startup, validated as a whole, and served
read-only afterwards.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

from ..models.errors import NotFound, TemplateConfigError
from ..models.template import Template, template_from_dict

logger = logging.getLogger(__name__)


class TemplateStore:
    """Read-mostly registry of templates keyed by id."""

    def __init__(self, templates: Iterable[Template] = ()):
        self._templates: Dict[int, Template] = {}
        self.replace(templates)

    def replace(self, templates: Iterable[Template]) -> None:
        """Swap in a new set of templates. Readers keep the mapping they already hold."""
        mapping: Dict[int, Template] = {}
        for template in templates:
            if template.id in mapping:
                raise TemplateConfigError(template.id, "duplicate template id")
            mapping[template.id] = template
        self._templates = mapping

    def get(self, template_id: int) -> Template:
        template = self._templates.get(template_id)
        if template is None:
            raise NotFound(f"template {template_id} not found")
        return template

    def list(self) -> List[Template]:
        return [self._templates[key] for key in sorted(self._templates)]

    def __len__(self) -> int:
        return len(self._templates)

    @classmethod
    def from_dicts(cls, raw_templates: Iterable[Dict[str, Any]]) -> "TemplateStore":
        return cls(template_from_dict(raw) for raw in raw_templates)

    @classmethod
    def load(cls, path: Path) -> "TemplateStore":
        """Load templates from a JSON file shaped ``{"templates": [...]}``.

        A missing file yields an empty store; any invalid template fails the load.

        Raises:
            TemplateConfigError: if the file is unreadable or a template is invalid
        """
        if not path.exists():
            logger.warning("Template file %s not found, starting with no templates", path)
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise TemplateConfigError(None, f"cannot read template file {path}: {exc}") from exc

        raw_templates = data.get("templates", []) if isinstance(data, dict) else data
        if not isinstance(raw_templates, list):
            raise TemplateConfigError(None, f"{path}: 'templates' must be a list")
        store = cls.from_dicts(raw_templates)
        logger.info("Loaded %d templates from %s", len(store), path)
        return store
