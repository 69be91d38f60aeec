# File: tracks/templates.py
"""
Tracks - Template Renderer
===========================
Renders templates from the read-only catalog shipped inside the package
(``tracks/catalog``) with a ``TemplateContext``.

The catalog is a closed namespace: an identifier is resolved only if it is
listed in the catalog.  Unknown identifiers and path-traversal shapes such
as ``../setup.py`` fail identically with ``TemplateNotFoundError``.

``render`` and ``render_to_file`` share one code path, so for identical
inputs the file written holds exactly the text ``render`` returns.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, FrozenSet, List, Mapping, Optional, Union

from jinja2 import (
    BaseLoader,
    Environment,
    PackageLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    TemplateSyntaxError,
)

from tracks.errors import (
    TemplateNotFoundError,
    TemplateRenderError,
    TemplateSyntaxInvalidError,
)
from tracks.models import TemplateContext
from tracks.utils import write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("tracks.templates")

TEMPLATE_SUFFIX: str = ".j2"

RenderData = Union[TemplateContext, Mapping[str, Any]]


def _catalog_loader() -> BaseLoader:
    return PackageLoader("tracks", "catalog")


def _context_mapping(data: RenderData) -> Mapping[str, Any]:
    if isinstance(data, TemplateContext):
        return data.as_dict()
    return data


class TemplateRenderer:
    """
    Renders catalog templates to text or to files.

    ``loader`` defaults to the embedded catalog; tests may hand in any jinja2
    loader to exercise error paths.
    """

    def __init__(self, loader: Optional[BaseLoader] = None) -> None:
        self.env: Environment = Environment(
            loader=loader or _catalog_loader(),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._catalog: FrozenSet[str] = frozenset(
            self.env.list_templates(filter_func=lambda name: name.endswith(TEMPLATE_SUFFIX))
        )
        logger.debug("TemplateRenderer loaded %d catalog templates.", len(self._catalog))

    # -- Catalog -----------------------------------------------------------

    def list_templates(self) -> List[str]:
        """Sorted identifiers of every catalog template."""
        return sorted(self._catalog)

    def has_template(self, name: str) -> bool:
        return name in self._catalog

    def _require(self, name: str) -> None:
        if name not in self._catalog:
            raise TemplateNotFoundError(name)

    # -- Rendering ---------------------------------------------------------

    def render(self, name: str, data: RenderData) -> str:
        """Render catalog template *name* and return the text."""
        self._require(name)
        try:
            template = self.env.get_template(name)
            return template.render(**_context_mapping(data))
        except TemplateNotFound:
            raise TemplateNotFoundError(name) from None
        except TemplateError as exc:
            raise TemplateRenderError(name, str(exc)) from exc

    def render_to_file(self, name: str, data: RenderData, output_path: Union[str, Path]) -> Path:
        """
        Render *name* and atomically write it to *output_path*.

        Intermediate directories are created; an existing file is replaced
        without a reader ever seeing a partial write.  The file is left
        ``0644``.
        """
        content: str = self.render(name, data)
        out: Path = Path(output_path)
        try:
            write_file(out, content)
        except OSError as exc:
            raise TemplateRenderError(name, f"failed to write file {out}: {exc}") from exc
        return out

    def validate(self, name: str) -> None:
        """Check that *name* exists in the catalog and parses."""
        self._require(name)
        try:
            source: str
            source, _, _ = self.env.loader.get_source(self.env, name)
            self.env.parse(source, name=name)
        except TemplateNotFound:
            raise TemplateNotFoundError(name) from None
        except TemplateSyntaxError as exc:
            raise TemplateSyntaxInvalidError(name, exc.message or str(exc)) from exc


__all__: List[str] = [
    "TEMPLATE_SUFFIX",
    "TemplateRenderer",
]
