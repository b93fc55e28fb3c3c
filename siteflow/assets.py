"""Asset tasks: image optimization, script bundling, stylesheet compilation.

Each task hands its transformation to one collaborator:
- ImageOptimizeTask: Pillow re-encodes JPEG/PNG/WebP with configured quality settings.
- ScriptBundleTask: rjsmin minifies the concatenated script entries.
- StyleCompileTask: the sass CLI compiles the entry stylesheet, then postcss
  with autoprefixer adds vendor prefixes when it is installed.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from rjsmin import jsmin

from .broadcaster import ReloadSignal
from .errors import CollaboratorError
from .executable_utils import find_executable, run_tool
from .globs import compile_globs, expand
from .tasks import PipelineTask
from .utils import is_fresh, read_text, require_file, write_text

logger = logging.getLogger(__name__)


class ImageOptimizeTask(PipelineTask):
    """Optimize raw images into the destination tree.

    Images whose destination copy is at least as new as the source are
    skipped, so an unchanged tree costs no recompression. Formats Pillow is
    not asked to re-encode are copied unchanged.
    """

    name = "optimize-images"
    JPEG_EXTENSIONS = {".jpg", ".jpeg"}
    SUPPORTED_EXTENSIONS = JPEG_EXTENSIONS | {".png", ".webp"}

    @property
    def inputs(self) -> tuple[str, ...]:
        return (self.config.images.source,)

    @property
    def output(self) -> str | None:
        return self.config.images.dest

    def execute(self) -> int:
        options = self.config.images
        root = self.config.project_root
        globs = compile_globs(options.source)
        base = root / globs.roots()[0][0]
        dest_dir = self.config.path(options.dest)
        processed = skipped = 0
        for source in expand(root, globs):
            dest = dest_dir / source.relative_to(base)
            if is_fresh(source, dest):
                skipped += 1
                continue
            self.optimize(source, dest)
            processed += 1
        logger.info("Optimized %d image(s), %d already up to date", processed, skipped)
        return processed

    def optimize(self, source: Path, dest: Path) -> None:
        """Re-encode one image into dest (or copy it when unsupported)."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        suffix = source.suffix.lower()
        if suffix not in self.SUPPORTED_EXTENSIONS:
            shutil.copy2(source, dest)
            return
        options = self.config.images
        partial = dest.with_name(f".{dest.name}.partial")
        try:
            with Image.open(source) as img:
                if suffix in self.JPEG_EXTENSIONS:
                    if img.mode not in ("RGB", "L", "CMYK"):
                        img = img.convert("RGB")
                    img.save(
                        partial,
                        "JPEG",
                        quality=options.quality,
                        progressive=options.progressive,
                        optimize=True,
                    )
                elif suffix == ".png":
                    img.save(
                        partial,
                        "PNG",
                        optimize=options.png_optimize,
                        compress_level=options.png_compress_level,
                    )
                else:
                    img.save(partial, "WEBP", quality=options.quality)
        except (UnidentifiedImageError, ValueError) as exc:
            partial.unlink(missing_ok=True)
            raise CollaboratorError(f"Could not optimize {source.name}: {exc}", original_error=exc) from exc
        except OSError:
            partial.unlink(missing_ok=True)
            raise
        os.replace(partial, dest)


class ScriptBundleTask(PipelineTask):
    """Concatenate the script entries and minify them into one bundle."""

    name = "bundle-scripts"

    @property
    def inputs(self) -> tuple[str, ...]:
        return tuple(self.config.scripts.entries)

    @property
    def output(self) -> str | None:
        return self.config.scripts.output

    def execute(self) -> Path:
        options = self.config.scripts
        parts = []
        for entry in options.entries:
            path = require_file(self.config.path(entry), "Script entry")
            parts.append(read_text(path))
        try:
            minified = jsmin("\n".join(parts))
        except Exception as exc:
            raise CollaboratorError(f"Minification failed: {exc}", original_error=exc) from exc
        output = self.config.path(options.output)
        write_text(output, minified)
        return output

    def reload_signal(self) -> ReloadSignal | None:
        return ReloadSignal.full()


class StyleCompileTask(PipelineTask):
    """Compile the entry stylesheet and add vendor prefixes."""

    name = "compile-styles"

    @property
    def inputs(self) -> tuple[str, ...]:
        return tuple(self.config.styles.watch)

    @property
    def output(self) -> str | None:
        return self.config.styles.output

    def execute(self) -> Path:
        options = self.config.styles
        root = self.config.project_root
        entry = require_file(self.config.path(options.entry), "Stylesheet entry")

        sass_bin = find_executable("sass", root)
        if not sass_bin:
            raise CollaboratorError(
                "sass CLI not found. Install with `npm install -D sass` in the project."
            )
        cmd = [sass_bin, "--no-source-map", f"--style={options.output_style}"]
        cmd.extend(f"--load-path={self.config.path(p)}" for p in options.include_paths)
        cmd.append(str(entry))
        css = run_tool(cmd, cwd=root)

        css = self._prefix(css)
        output = self.config.path(options.output)
        write_text(output, css)
        return output

    def _prefix(self, css: str) -> str:
        postcss_bin = find_executable("postcss", self.config.project_root)
        if not postcss_bin:
            logger.warning(
                "postcss CLI not found; skipping vendor prefixes. "
                "Install with `npm install -D postcss-cli autoprefixer`."
            )
            return css
        options = self.config.styles
        env = {"BROWSERSLIST": ", ".join(options.browsers)}
        if options.grid:
            env["AUTOPREFIXER_GRID"] = "autoplace"
        return run_tool(
            [postcss_bin, "--use", "autoprefixer", "--no-map"],
            cwd=self.config.project_root,
            input_text=css,
            env=env,
        )

    def reload_signal(self) -> ReloadSignal | None:
        return ReloadSignal.asset(self.served_url(self.config.path(self.config.styles.output)))
