"""Path pattern matching for siteflow.

Task inputs, watch rules and package selections are all written as globs
relative to a base directory. This module compiles them into regular
expressions once and matches posix-style relative paths against them.

Supported syntax:
- ``*`` and ``?``: any run of characters / a single character within one segment.
- ``**``: any number of directories.
- ``{a,b}``: alternation.
- ``+(a|b)`` and ``@(a|b)``: extglob groups (one-or-more / exactly-one).
- ``[abc]``: character classes.
- A leading ``!`` turns the pattern into an exclusion.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

_MAGIC = set("*?[{+@")


def translate(pattern: str) -> str:
    """Translate a glob pattern into a regular expression source string.

    Args:
        pattern: Glob pattern without a leading "!".

    Returns:
        Regex source anchored at both ends.

    Examples:
        >>> bool(re.match(translate("app/**/*.js"), "app/js/vendor/x.js"))
        True
    """
    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                at_start = i == 0 or pattern[i - 1] == "/"
                follows_slash = pattern.startswith("**/", i)
                if at_start and follows_slash:
                    out.append("(?:.*/)?")
                    i += 3
                    continue
                if at_start and i + 2 == n:
                    out.append(".*")
                    i += 2
                    continue
            out.append("[^/]*")
            i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
                i += 1
            else:
                body = pattern[i + 1 : end].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end + 1
        elif c == "{":
            end = pattern.find("}", i + 1)
            if end == -1:
                out.append(re.escape(c))
                i += 1
            else:
                options = pattern[i + 1 : end].split(",")
                out.append("(?:" + "|".join(_translate_fragment(o) for o in options) + ")")
                i = end + 1
        elif c in "+@" and pattern.startswith("(", i + 1):
            end = pattern.find(")", i + 2)
            if end == -1:
                out.append(re.escape(c))
                i += 1
            else:
                options = pattern[i + 2 : end].split("|")
                group = "(?:" + "|".join(_translate_fragment(o) for o in options) + ")"
                out.append(group + ("+" if c == "+" else ""))
                i = end + 1
        else:
            out.append(re.escape(c))
            i += 1
    return "".join(out) + r"\Z"


def _translate_fragment(fragment: str) -> str:
    return translate(fragment)[: -len(r"\Z")]


def _split_base(pattern: str) -> tuple[str, bool]:
    """Split a pattern into its fixed leading directories and a recursion flag.

    The flag is False when everything after the base is a single path
    segment, so the base directory alone (not its subtree) has to be scanned.
    """
    parts: list[str] = []
    segments = pattern.split("/")
    for segment in segments[:-1]:
        if any(ch in _MAGIC for ch in segment):
            break
        parts.append(segment)
    remainder = segments[len(parts) :]
    recursive = len(remainder) > 1 or "**" in remainder[0]
    return "/".join(parts), recursive


@dataclass(frozen=True)
class GlobSet:
    """A compiled set of inclusion and exclusion globs.

    Attributes:
        patterns: The original patterns, in declaration order.
    """

    patterns: tuple[str, ...]

    def __post_init__(self):
        includes = [p for p in self.patterns if not p.startswith("!")]
        excludes = [p[1:] for p in self.patterns if p.startswith("!")]
        object.__setattr__(self, "_includes", [re.compile(translate(p)) for p in includes])
        object.__setattr__(self, "_excludes", [re.compile(translate(p)) for p in excludes])
        object.__setattr__(self, "_bases", tuple(_split_base(p) for p in includes))

    def match(self, rel_path: str | PurePosixPath) -> bool:
        """Check whether a relative path is selected by this set.

        Args:
            rel_path: Posix-style path relative to the glob base.

        Returns:
            True if an inclusion matches and no exclusion does.
        """
        text = str(rel_path).replace("\\", "/")
        if not any(rx.match(text) for rx in self._includes):
            return False
        return not any(rx.match(text) for rx in self._excludes)

    def roots(self) -> list[tuple[str, bool]]:
        """Return the distinct (base directory, recursive) pairs of the inclusions.

        A base directory with recursive=False only needs its direct children
        scanned or watched.
        """
        merged: dict[str, bool] = {}
        for base, recursive in self._bases:
            merged[base] = merged.get(base, False) or recursive
        return list(merged.items())


def compile_globs(patterns: str | Iterable[str]) -> GlobSet:
    """Compile one or more glob patterns into a GlobSet."""
    if isinstance(patterns, str):
        patterns = [patterns]
    return GlobSet(tuple(patterns))


def expand(root: Path, patterns: str | Iterable[str] | GlobSet) -> list[Path]:
    """List existing files under root selected by the given globs.

    Args:
        root: Directory the patterns are relative to.
        patterns: Patterns or an already compiled GlobSet.

    Returns:
        Sorted list of matching file paths.
    """
    globs = patterns if isinstance(patterns, GlobSet) else compile_globs(patterns)
    found: set[Path] = set()
    for base, recursive in globs.roots():
        start = root / base if base else root
        if not start.is_dir():
            continue
        candidates: Iterable[Path] = start.rglob("*") if recursive else start.iterdir()
        for path in candidates:
            if not path.is_file():
                continue
            rel = path.relative_to(root).as_posix()
            if globs.match(rel):
                found.add(path)
    return sorted(found)
