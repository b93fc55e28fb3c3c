"""HTML re-indentation for generated pages.

Parses markup into a light element tree with the standard library's
HTMLParser and serializes it back one block per line, indented by nesting
depth. Text and phrasing elements (a, b, em, span, code, ...) form inline
runs that stay on one line with their surrounding text, so re-indenting
never adds or removes visible whitespace between words and punctuation.
Only block structure is indented. Void elements never nest, and the bodies
of whitespace-sensitive elements (pre, script, style, textarea) are written
back verbatim. Formatting an already formatted document returns it
unchanged.

Functions:
    format_html: Re-indent a document with a fixed indent size.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser

VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    }
)
RAW_ELEMENTS = frozenset({"pre", "script", "style", "textarea"})
# Starting one of these closes an open sibling of the same tag.
_SELF_CLOSING_SIBLINGS = frozenset({"li", "p", "option", "tr", "td", "th", "dt", "dd"})
# Elements laid out inline with the text around them.
PHRASING_ELEMENTS = frozenset(
    {
        "a", "abbr", "b", "bdi", "bdo", "br", "button", "cite", "code", "data",
        "del", "dfn", "em", "i", "img", "input", "ins", "kbd", "label", "mark",
        "q", "s", "samp", "small", "span", "strong", "sub", "sup", "svg", "time",
        "u", "var", "wbr",
    }
)
_WHITESPACE = re.compile(r"\s+")


@dataclass
class _Element:
    tag: str
    attrs: str = ""
    children: list = field(default_factory=list)
    self_closing: bool = False
    raw: list[str] | None = None


@dataclass
class _Literal:
    """Doctype, comment or processing instruction, kept as written."""

    text: str


def _format_attrs(attrs: list[tuple[str, str | None]]) -> str:
    parts = []
    for name, value in attrs:
        if value is None:
            parts.append(name)
        else:
            escaped = value.replace("&", "&amp;").replace('"', "&quot;")
            parts.append(f'{name}="{escaped}"')
    return (" " + " ".join(parts)) if parts else ""


class _TreeBuilder(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=False)
        self.root = _Element("#root")
        self.stack: list[_Element] = [self.root]
        self._raw_nesting = 0

    @property
    def current(self) -> _Element:
        return self.stack[-1]

    def _in_raw(self) -> bool:
        return self.current.raw is not None

    def handle_starttag(self, tag, attrs):
        if self._in_raw():
            if tag == self.current.tag:
                self._raw_nesting += 1
            self.current.raw.append(self.get_starttag_text())
            return
        if tag in _SELF_CLOSING_SIBLINGS and self.current.tag == tag:
            self.stack.pop()
        element = _Element(tag, _format_attrs(attrs))
        self.current.children.append(element)
        if tag in VOID_ELEMENTS:
            return
        if tag in RAW_ELEMENTS:
            element.raw = []
        self.stack.append(element)

    def handle_startendtag(self, tag, attrs):
        if self._in_raw():
            self.current.raw.append(self.get_starttag_text())
            return
        element = _Element(tag, _format_attrs(attrs), self_closing=tag not in VOID_ELEMENTS)
        self.current.children.append(element)

    def handle_endtag(self, tag):
        if self._in_raw():
            if tag != self.current.tag:
                self.current.raw.append(f"</{tag}>")
                return
            if self._raw_nesting:
                self._raw_nesting -= 1
                self.current.raw.append(f"</{tag}>")
                return
            self.stack.pop()
            return
        for index in range(len(self.stack) - 1, 0, -1):
            if self.stack[index].tag == tag:
                del self.stack[index:]
                return
        # Stray end tag with no open element: dropped.

    def handle_data(self, data):
        if self._in_raw():
            self.current.raw.append(data)
        else:
            self._append_text(data)

    def handle_entityref(self, name):
        self.handle_data(f"&{name};")

    def handle_charref(self, name):
        self.handle_data(f"&#{name};")

    def handle_comment(self, data):
        self._append_literal(f"<!--{data}-->")

    def handle_decl(self, decl):
        self._append_literal(f"<!{decl}>")

    def handle_pi(self, data):
        self._append_literal(f"<?{data}>")

    def unknown_decl(self, data):
        self._append_literal(f"<![{data}]>")

    def _append_text(self, text: str) -> None:
        children = self.current.children
        if children and isinstance(children[-1], str):
            children[-1] += text
        else:
            children.append(text)

    def _append_literal(self, text: str) -> None:
        if self._in_raw():
            self.current.raw.append(text)
        else:
            self.current.children.append(_Literal(text))


def _is_phrasing(node) -> bool:
    if isinstance(node, str):
        return True
    if isinstance(node, _Literal) or node.raw is not None:
        return False
    return node.tag in PHRASING_ELEMENTS and all(_is_phrasing(child) for child in node.children)


def _inline_markup(node) -> str:
    """Serialize phrasing content, collapsing whitespace runs to one space."""
    if isinstance(node, str):
        return _WHITESPACE.sub(" ", node)
    if node.self_closing:
        return f"<{node.tag}{node.attrs} />"
    if node.tag in VOID_ELEMENTS:
        return f"<{node.tag}{node.attrs}>"
    inner = "".join(_inline_markup(child) for child in node.children)
    return f"<{node.tag}{node.attrs}>{inner}</{node.tag}>"


def _flush_run(run: list[str], pad: str, lines: list[str]) -> None:
    text = "".join(run).strip()
    if text:
        lines.append(pad + text)
    run.clear()


def _render(element: _Element, depth: int, indent: str, lines: list[str]) -> None:
    pad = indent * depth
    run: list[str] = []
    for child in element.children:
        if _is_phrasing(child):
            run.append(_inline_markup(child))
            continue
        _flush_run(run, pad, lines)
        if isinstance(child, _Literal):
            lines.append(pad + child.text)
        elif child.self_closing:
            lines.append(f"{pad}<{child.tag}{child.attrs} />")
        elif child.tag in VOID_ELEMENTS:
            lines.append(f"{pad}<{child.tag}{child.attrs}>")
        elif child.raw is not None:
            lines.append(f"{pad}<{child.tag}{child.attrs}>{''.join(child.raw)}</{child.tag}>")
        elif all(_is_phrasing(grandchild) for grandchild in child.children):
            inner = "".join(_inline_markup(grandchild) for grandchild in child.children).strip()
            lines.append(f"{pad}<{child.tag}{child.attrs}>{inner}</{child.tag}>")
        else:
            lines.append(f"{pad}<{child.tag}{child.attrs}>")
            _render(child, depth + 1, indent, lines)
            lines.append(f"{pad}</{child.tag}>")
    _flush_run(run, pad, lines)


def format_html(markup: str, indent_size: int = 2) -> str:
    """Re-indent an HTML document.

    Args:
        markup: HTML source.
        indent_size: Spaces added per nesting level.

    Returns:
        Formatted HTML ending with a single newline (empty input stays empty).

    Examples:
        >>> format_html("<ul><li>a</li><li>b</li></ul>")
        '<ul>\\n  <li>a</li>\\n  <li>b</li>\\n</ul>\\n'
    """
    builder = _TreeBuilder()
    builder.feed(markup)
    builder.close()
    lines: list[str] = []
    _render(builder.root, 0, " " * indent_size, lines)
    return "\n".join(lines) + "\n" if lines else ""
