"""
Agent message rendering.

Agent replies may use a small markup subset: paragraphs, bullet and numbered
lists, **bold**, [text](url) links and bare http(s) URLs. Everything else is
HTML-escaped. Every link opens in a new browsing context with no reference
back to the embedding page.
"""
import re
from typing import List, Optional

from markupsafe import Markup, escape

LINK_TARGET_ATTRS = 'target="_blank" rel="noopener noreferrer"'
SAFE_SCHEMES = ("http://", "https://", "mailto:")

INLINE_PATTERN = re.compile(
    r'\[(?P<text>[^\]]+)\]\((?P<url>[^)\s]+)\)'
    r'|\*\*(?P<bold>.+?)\*\*'
    r'|(?P<bare>https?://[^\s<]+)'
)
BULLET_ITEM = re.compile(r'^\s*[-*•]\s+(.*)$')
NUMBERED_ITEM = re.compile(r'^\s*\d+[.)]\s+(.*)$')
TRAILING_PUNCTUATION = '.,;:!?)'


def _anchor(url: str, text: str, link_color: Optional[str]) -> str:
    style = f' style="color: {escape(link_color)}; text-decoration: underline;"' if link_color else ""
    return f'<a href="{escape(url)}" {LINK_TARGET_ATTRS}{style}>{text}</a>'


def _format_inline(text: str, link_color: Optional[str] = None) -> str:
    parts: List[str] = []
    position = 0
    for match in INLINE_PATTERN.finditer(text):
        parts.append(str(escape(text[position:match.start()])))
        position = match.end()

        if match.group("text") is not None:
            url = match.group("url")
            label = _format_inline(match.group("text"), link_color)
            if url.lower().startswith(SAFE_SCHEMES):
                parts.append(_anchor(url, label, link_color))
            else:
                parts.append(label)
        elif match.group("bold") is not None:
            parts.append(f"<strong>{_format_inline(match.group('bold'), link_color)}</strong>")
        else:
            url = match.group("bare")
            trailing = ""
            while url and url[-1] in TRAILING_PUNCTUATION:
                trailing = url[-1] + trailing
                url = url[:-1]
            parts.append(_anchor(url, str(escape(url)), link_color))
            parts.append(str(escape(trailing)))

    parts.append(str(escape(text[position:])))
    return "".join(parts)


def _format_block(lines: List[str], link_color: Optional[str]) -> str:
    if all(BULLET_ITEM.match(line) for line in lines):
        items = "".join(
            f"<li>{_format_inline(BULLET_ITEM.match(line).group(1), link_color)}</li>" for line in lines
        )
        return f"<ul>{items}</ul>"

    if all(NUMBERED_ITEM.match(line) for line in lines):
        items = "".join(
            f"<li>{_format_inline(NUMBERED_ITEM.match(line).group(1), link_color)}</li>" for line in lines
        )
        return f"<ol>{items}</ol>"

    return "<p>" + "<br>".join(_format_inline(line, link_color) for line in lines) + "</p>"


def format_message(content: str, link_color: Optional[str] = None) -> Markup:
    """Render agent message content to safe HTML"""
    blocks: List[List[str]] = []
    current: List[str] = []
    for line in (content or "").replace("\r\n", "\n").split("\n"):
        if line.strip():
            current.append(line.rstrip())
        elif current:
            blocks.append(current)
            current = []
    if current:
        blocks.append(current)

    return Markup("".join(_format_block(block, link_color) for block in blocks))


def format_visitor_message(content: str) -> Markup:
    """Visitor text is never interpreted as markup"""
    return Markup("<p>" + "<br>".join(str(escape(line)) for line in (content or "").split("\n")) + "</p>")
