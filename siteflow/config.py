"""Configuration loading for siteflow.

Configuration lives in an optional siteflow.yaml at the project root. Each
top-level section maps onto one frozen dataclass below, and every recognized
option is listed there with its default. Values from the file are merged over
those defaults section by section, then validated once at startup; unknown
sections, unknown keys, wrong types and out-of-range values raise ConfigError
before any task runs.

Key functions:
- load_config: Read siteflow.yaml (if present) into a SiteConfig.
- config_from_mapping: Build a SiteConfig from an already-parsed mapping.
"""

from __future__ import annotations

import types
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Union, get_args, get_origin, get_type_hints

import yaml

from .errors import ConfigError

CONFIG_FILENAME = "siteflow.yaml"


@dataclass(frozen=True)
class ImageOptions:
    """Image optimization settings.

    Attributes:
        source: Glob of raw images to optimize.
        dest: Directory receiving optimized images.
        quality: JPEG quality passed to Pillow (1-95).
        progressive: Write progressive JPEGs.
        png_optimize: Let Pillow search for the smallest PNG encoding.
        png_compress_level: zlib compression level for PNG output (0-9).
    """

    source: str = "app/assets/images/src/*.*"
    dest: str = "app/assets/images/dist"
    quality: int = 75
    progressive: bool = True
    png_optimize: bool = True
    png_compress_level: int = 5

    def __post_init__(self):
        if not 1 <= self.quality <= 95:
            raise ConfigError(f"images.quality must be between 1 and 95, got {self.quality}")
        if not 0 <= self.png_compress_level <= 9:
            raise ConfigError(
                f"images.png_compress_level must be between 0 and 9, got {self.png_compress_level}"
            )


@dataclass(frozen=True)
class StyleOptions:
    """Stylesheet compilation settings.

    Attributes:
        entry: Entry stylesheet handed to the sass compiler.
        output: Compiled stylesheet path.
        watch: Globs whose changes recompile the stylesheet.
        include_paths: Extra load paths for @use/@import resolution.
        output_style: sass output style ("expanded" or "compressed").
        browsers: Browserslist queries for the autoprefixer pass.
        grid: Let autoprefixer add IE grid prefixes.
    """

    entry: str = "app/scss/style.scss"
    output: str = "app/css/style.min.css"
    watch: tuple[str, ...] = ("app/scss/**/*.scss",)
    include_paths: tuple[str, ...] = ("node_modules",)
    output_style: str = "expanded"
    browsers: tuple[str, ...] = ("last 10 versions",)
    grid: bool = True

    def __post_init__(self):
        if self.output_style not in ("expanded", "compressed"):
            raise ConfigError(
                f"styles.output_style must be 'expanded' or 'compressed', got {self.output_style!r}"
            )


@dataclass(frozen=True)
class ScriptOptions:
    """Script bundling settings.

    Attributes:
        entries: Script files concatenated in order into the bundle.
        output: Minified bundle path.
        watch: Globs whose changes rebuild the bundle ("!" excludes).
    """

    entries: tuple[str, ...] = ("app/js/main.js",)
    output: str = "app/js/main.min.js"
    watch: tuple[str, ...] = ("app/js/**/*.js", "!app/js/main.min.js")

    def __post_init__(self):
        if not self.entries:
            raise ConfigError("scripts.entries must list at least one file")


@dataclass(frozen=True)
class TemplateOptions:
    """Template rendering settings.

    Attributes:
        pages: Globs selecting the page templates to render.
        search_paths: Directories Jinja2 resolves includes/extends against.
        pages_root: Directory page paths are made relative to.
        output_dir: Directory receiving rendered HTML.
        data_file: JSON file exposed to every template.
        watch: Globs whose changes re-render the pages.
    """

    pages: tuple[str, ...] = ("app/templates/pages/**/*.{html,nunjucks,njk}",)
    search_paths: tuple[str, ...] = ("app/templates",)
    pages_root: str = "app/templates/pages"
    output_dir: str = "app"
    data_file: str = "data.json"
    watch: tuple[str, ...] = (
        "app/templates/**/*.{html,nunjucks,njk}",
        "data.json",
    )


@dataclass(frozen=True)
class HtmlOptions:
    """HTML formatting settings.

    Attributes:
        files: Globs of generated HTML to reformat in place.
        indent_size: Spaces per nesting level.
    """

    files: tuple[str, ...] = ("app/*.html",)
    indent_size: int = 2

    def __post_init__(self):
        if self.indent_size < 0:
            raise ConfigError(f"html.indent_size must be >= 0, got {self.indent_size}")


@dataclass(frozen=True)
class PackageOptions:
    """Release packaging settings.

    Attributes:
        base: Directory the include globs are relative to.
        include: Globs of compiled assets copied into the release ("!" excludes).
        dest: Release directory.
    """

    base: str = "app"
    include: tuple[str, ...] = (
        "css/style.min.css",
        "fonts/**/*",
        "js/**/*.min.js",
        "**/*.html",
        "assets/images/dist/**/*",
        "!templates/**",
    )
    dest: str = "dist"


@dataclass(frozen=True)
class PublishOptions:
    """Remote publishing settings.

    Attributes:
        source: Directory pushed to the remote.
        branch: Remote branch receiving the release.
        remote: Remote name in the project repository, or a URL/path.
        dotfiles: Include files whose name starts with a dot.
        message: Commit message for the published snapshot.
    """

    source: str = "dist"
    branch: str = "gh-pages"
    remote: str = "origin"
    dotfiles: bool = True
    message: str = "Update site"


@dataclass(frozen=True)
class ServerOptions:
    """Preview server settings.

    Attributes:
        root: Directory served over HTTP.
        host: Interface both servers bind to.
        port: HTTP port.
        ws_port: Live reload websocket port (defaults to port + 1).
    """

    root: str = "app"
    host: str = "localhost"
    port: int = 3000
    ws_port: int | None = None

    @property
    def websocket_port(self) -> int:
        return self.ws_port if self.ws_port is not None else self.port + 1


@dataclass(frozen=True)
class WatchOptions:
    """File watcher settings.

    Attributes:
        debounce: Seconds a path must stay quiet before its change is emitted.
    """

    debounce: float = 0.1

    def __post_init__(self):
        if self.debounce < 0:
            raise ConfigError(f"watch.debounce must be >= 0, got {self.debounce}")


_SECTIONS: dict[str, type] = {
    "images": ImageOptions,
    "styles": StyleOptions,
    "scripts": ScriptOptions,
    "templates": TemplateOptions,
    "html": HtmlOptions,
    "package": PackageOptions,
    "publish": PublishOptions,
    "server": ServerOptions,
    "watch": WatchOptions,
}

_TOP_LEVEL_LISTS = ("clean_dirs", "clean_html")


@dataclass(frozen=True)
class SiteConfig:
    """Validated siteflow configuration.

    Attributes:
        project_root: Directory every configured path is relative to.
        clean_dirs: Directories removed by clean-dist.
        clean_html: Globs of generated HTML removed by clean-html.
    """

    project_root: Path
    clean_dirs: tuple[str, ...] = ("dist",)
    clean_html: tuple[str, ...] = ("app/*.html",)
    images: ImageOptions = field(default_factory=ImageOptions)
    styles: StyleOptions = field(default_factory=StyleOptions)
    scripts: ScriptOptions = field(default_factory=ScriptOptions)
    templates: TemplateOptions = field(default_factory=TemplateOptions)
    html: HtmlOptions = field(default_factory=HtmlOptions)
    package: PackageOptions = field(default_factory=PackageOptions)
    publish: PublishOptions = field(default_factory=PublishOptions)
    server: ServerOptions = field(default_factory=ServerOptions)
    watch: WatchOptions = field(default_factory=WatchOptions)

    def path(self, rel: str | Path) -> Path:
        """Resolve a configured path against the project root."""
        return self.project_root / rel

    def with_overrides(self, section: str, **values: Any) -> SiteConfig:
        """Return a copy with selected options of one section replaced."""
        current = getattr(self, section)
        merged = {f.name: getattr(current, f.name) for f in fields(current)}
        merged.update({k: v for k, v in values.items() if v is not None})
        return replace(self, **{section: _build_section(section, merged)})


def load_config(project_root: Path) -> SiteConfig:
    """Load and validate configuration from siteflow.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        SiteConfig with defaults applied for everything the file omits.

    Raises:
        ConfigError: If the file is malformed or contains invalid options.
    """
    config_path = project_root / CONFIG_FILENAME
    loaded: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Could not parse {CONFIG_FILENAME}: {exc}", original_error=exc) from exc
        if not isinstance(loaded, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the top level")
    return config_from_mapping(project_root, loaded)


def config_from_mapping(project_root: Path, raw: dict[str, Any]) -> SiteConfig:
    """Build a SiteConfig from a parsed mapping.

    Args:
        project_root: Root directory of the project.
        raw: Mapping of section name to option mapping.

    Returns:
        Validated SiteConfig.
    """
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _TOP_LEVEL_LISTS:
            if not _matches_type(value, tuple[str, ...]):
                raise ConfigError(f"{key} must be a list of strings")
            kwargs[key] = tuple(value)
        elif key in _SECTIONS:
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ConfigError(f"Section '{key}' must be a mapping")
            kwargs[key] = _build_section(key, value)
        else:
            raise ConfigError(f"Unknown configuration section: {key}")
    return SiteConfig(project_root=project_root, **kwargs)


def _build_section(section: str, values: dict[str, Any]) -> Any:
    cls = _SECTIONS[section]
    hints = get_type_hints(cls)
    known = {f.name for f in fields(cls)}
    for key, value in values.items():
        if key not in known:
            raise ConfigError(f"Unknown option '{section}.{key}'")
        if not _matches_type(value, hints[key]):
            raise ConfigError(
                f"Option '{section}.{key}' has invalid value {value!r}"
            )
    values = {k: tuple(v) if isinstance(v, list) else v for k, v in values.items()}
    return cls(**values)


def _matches_type(value: Any, hint: Any) -> bool:
    """Check a parsed YAML value against a dataclass field annotation."""
    origin = get_origin(hint)
    if origin is Union or origin is getattr(types, "UnionType", None):
        return any(_matches_type(value, arg) for arg in get_args(hint))
    if origin is tuple:
        item_type = get_args(hint)[0]
        return isinstance(value, (list, tuple)) and all(_matches_type(v, item_type) for v in value)
    if hint is type(None):
        return value is None
    if hint is bool:
        return isinstance(value, bool)
    if hint is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if hint is float:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if hint is str:
        return isinstance(value, str)
    return isinstance(value, hint)
