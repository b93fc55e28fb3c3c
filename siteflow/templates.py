"""Template rendering task.

Pages under the configured pages tree are rendered with Jinja2 against the
JSON data file and written as .html files into the output directory, keeping
their path relative to the pages root. Layouts and partials are resolved
through the configured search paths.

Key class:
- TemplateRenderTask: The render-templates task.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    TemplateError,
    TemplateNotFound,
    TemplateSyntaxError,
    select_autoescape,
)

from .broadcaster import ReloadSignal
from .errors import CollaboratorError, FilesystemError
from .globs import expand
from .tasks import PipelineTask
from .utils import read_text, require_file, write_text

logger = logging.getLogger(__name__)


class TemplateRenderTask(PipelineTask):
    """Render page templates with the site data into HTML."""

    name = "render-templates"

    @property
    def inputs(self) -> tuple[str, ...]:
        return tuple(self.config.templates.watch)

    @property
    def output(self) -> str | None:
        return self.config.templates.output_dir

    def load_data(self) -> dict[str, Any]:
        """Read the JSON data file exposed to every template.

        Raises:
            MissingSourceError: If the data file does not exist.
            CollaboratorError: If it is not a JSON object.
        """
        path = require_file(
            self.config.path(self.config.templates.data_file), "Template data file"
        )
        try:
            data = json.loads(read_text(path))
        except json.JSONDecodeError as exc:
            raise CollaboratorError(
                f"{path.name}: invalid JSON on line {exc.lineno}: {exc.msg}", original_error=exc
            ) from exc
        if not isinstance(data, dict):
            raise CollaboratorError(f"{path.name} must contain a JSON object")
        return data

    def create_environment(self, data: dict[str, Any]) -> Environment:
        env = Environment(
            loader=FileSystemLoader(
                [self.config.path(p) for p in self.config.templates.search_paths]
            ),
            autoescape=select_autoescape(["html", "htm", "xml", "njk", "nunjucks"]),
            keep_trailing_newline=True,
        )
        env.globals["data"] = data
        return env

    def execute(self) -> list[Path]:
        options = self.config.templates
        root = self.config.project_root
        data = self.load_data()
        env = self.create_environment(data)
        pages_root = self.config.path(options.pages_root)
        output_dir = self.config.path(options.output_dir)

        pages = expand(root, options.pages)
        if not pages:
            logger.warning("No page templates matched %s", ", ".join(options.pages))
        written = []
        for page in pages:
            try:
                rel = page.relative_to(pages_root)
            except ValueError:
                rel = Path(page.name)
            target = output_dir / rel.with_suffix(".html")
            rendered = self._render(env, page, data, "/" + rel.with_suffix(".html").as_posix())
            write_text(target, rendered)
            written.append(target)
        return written

    def _template_name(self, page: Path) -> str | None:
        for search_path in self.config.templates.search_paths:
            try:
                return page.relative_to(self.config.path(search_path)).as_posix()
            except ValueError:
                continue
        return None

    def _render(self, env: Environment, page: Path, data: dict[str, Any], url: str) -> str:
        display = page.relative_to(self.config.project_root).as_posix()
        context = {**data, "page": {"url": url, "source": display}}
        try:
            name = self._template_name(page)
            if name is None:
                template = env.from_string(read_text(page))
            else:
                template = env.get_template(name)
            return template.render(context)
        except UnicodeDecodeError as exc:
            raise FilesystemError(
                f"{display}: template is not valid UTF-8: {exc.reason}", original_error=exc
            ) from exc
        except TemplateSyntaxError as exc:
            raise CollaboratorError(
                f"{exc.filename or display}: Template syntax error on line {exc.lineno}: {exc.message}",
                original_error=exc,
            ) from exc
        except TemplateNotFound as exc:
            raise CollaboratorError(
                f"{display}: Template not found: {exc.name}", original_error=exc
            ) from exc
        except (TemplateError, TypeError, AttributeError) as exc:
            raise CollaboratorError(
                f"{display}: {_format_error_message(exc)}", original_error=exc
            ) from exc

    def reload_signal(self) -> ReloadSignal | None:
        return ReloadSignal.full()


def _format_error_message(exc: Exception) -> str:
    """Format a rendering exception into a user-friendly message."""
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"
