import html
import re
from dataclasses import dataclass
from typing import Iterator


PLAIN = "plain"
BOLD = "bold"
ITALIC = "italic"
UNDERLINE = "underline"

# Alternatives are tried left to right; each carries exactly one group.
FORMAT_PATTERN = re.compile(
    r"\*\*(.+?)\*\*"
    r"|__(.+?)__"
    r"|(?<!\*)\*(?!\*)(.+?)(?<!\*)\*(?!\*)"
    r"|(?<!_)_(?!_)(.+?)(?<!_)_(?!_)"
    r"|<u>(.+?)</u>"
)

_GROUP_KINDS = {
    1: BOLD,
    2: BOLD,
    3: ITALIC,
    4: ITALIC,
    5: UNDERLINE,
}

_HTML_TAGS = {
    PLAIN: ("<span>", "</span>"),
    BOLD: ('<strong class="font-semibold text-foreground">', "</strong>"),
    ITALIC: ('<em class="italic">', "</em>"),
    UNDERLINE: ('<span class="underline">', "</span>"),
}


@dataclass(frozen=True)
class Span:
    kind: str
    text: str


def format_line(line: str) -> list[Span]:
    """Split a single line into plain and styled spans."""
    spans: list[Span] = []
    last_index = 0
    for match in FORMAT_PATTERN.finditer(line):
        if match.start() > last_index:
            spans.append(Span(PLAIN, line[last_index:match.start()]))
        group = match.lastindex
        spans.append(Span(_GROUP_KINDS[group], match.group(group)))
        last_index = match.end()

    if last_index < len(line):
        spans.append(Span(PLAIN, line[last_index:]))

    return spans or [Span(PLAIN, line)]


def format_text(content: str) -> Iterator[list[Span]]:
    """
    Yield one list of spans per newline-separated line of ``content``.

    Markers never cross a line break. Unterminated or unmatched markers are
    kept as literal plain text, so this never raises for any string input.
    """
    for line in (content or "").split("\n"):
        yield format_line(line)


def to_plain_text(content: str) -> str:
    return "\n".join("".join(span.text for span in line) for line in format_text(content))


def render_html(content: str, css_class: str = "") -> str:
    lines = []
    for spans in format_text(content):
        parts = []
        for span in spans:
            if span.kind == PLAIN and not span.text:
                continue
            opening, closing = _HTML_TAGS[span.kind]
            parts.append(f"{opening}{html.escape(span.text)}{closing}")
        lines.append("".join(parts))
    classes = f"whitespace-pre-wrap leading-relaxed {css_class}".strip()
    body = "\n".join(lines)
    return f'<div class="{html.escape(classes, quote=True)}">{body}</div>'
