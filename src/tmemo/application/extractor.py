"""
Card extraction from markdown text.

Two syntaxes are recognized anywhere in a note body:

    front :: back

    :::
    front lines
    :::
    back lines
    :::

YAML frontmatter and fenced code blocks are never scanned. A back containing
``{{{cloze}}}`` or ``(((cloze)))`` spans expands into one card per span.

Malformed cards are reported as ParseWarning and skipped; they never stop
extraction of the rest of the file.
"""

import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import PurePath

from tmemo.application.utils.text import parse_frontmatter
from tmemo.domain.constants import (
    BLOCK_DELIMITER,
    CLOZE_PLACEHOLDER,
    FENCE_MARKERS,
    FRONTMATTER_OPT_OUT_KEY,
    INLINE_DELIMITER,
)
from tmemo.domain.exceptions import ParseWarning
from tmemo.domain.models import CardCandidate, CardSyntax, SourceSpan

logger = logging.getLogger(__name__)

WarningSink = Callable[[ParseWarning], None]

# "::" counts as a delimiter only when followed by whitespace or end of line,
# so that prose like ``std::vec`` is left alone.
_INLINE_DELIMITER = re.compile(re.escape(INLINE_DELIMITER) + r"(?=\s|$)")
_HEADING = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_BRACE_CLOZE = re.compile(r"\{\{\{(.*?)\}\}\}", re.DOTALL)
_PAREN_CLOZE = re.compile(r"\(\(\((.*?)\)\)\)", re.DOTALL)


def _log_warning(warning: ParseWarning) -> None:
    logger.warning(str(warning))


def extract_cards(
    source_path: str, text: str, on_warning: WarningSink | None = None
) -> "ExtractedCards":
    """Return a lazy, restartable view of the cards in one file."""
    return ExtractedCards(source_path, text, on_warning or _log_warning)


class ExtractedCards:
    """
    Cards found in one markdown file.

    Iterating re-parses the text, so the view can be consumed any number of
    times. Diagnostics are sent to ``on_warning`` on every pass.
    """

    def __init__(self, source_path: str, text: str, on_warning: WarningSink):
        self.source_path = source_path
        self.text = text
        self.on_warning = on_warning

    def __iter__(self) -> Iterator[CardCandidate]:
        return _iter_candidates(self.source_path, self.text, self.on_warning)


# ---------- Scanning ----------


@dataclass
class _Block:
    start: int
    end: int | None = None
    sections: list[list[str]] = field(default_factory=lambda: [[], []])
    delimiters: list[int] = field(default_factory=list)


def _iter_candidates(
    source_path: str, text: str, warn: WarningSink
) -> Iterator[CardCandidate]:
    text = text.replace("\r\n", "\n")
    meta, body, first_line = parse_frontmatter(text)

    if "__yaml_error__" in meta:
        warn(
            ParseWarning(
                source_path,
                SourceSpan(1, max(first_line - 1, 1)),
                f"unreadable frontmatter ignored: {meta['__yaml_error__']}",
            )
        )
    elif meta.get(FRONTMATTER_OPT_OUT_KEY) is False:
        logger.debug(f"[extract] {source_path}: opted out via frontmatter")
        return

    lines = body.split("\n")
    headings: list[tuple[int, str]] = []
    root_title = PurePath(source_path).name
    plain_delimiters: set[int] = set()
    fence: str | None = None
    i = 0

    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        lineno = first_line + i

        if fence is not None:
            if stripped.startswith(fence):
                fence = None
            i += 1
            continue

        marker = _fence_marker(stripped)
        if marker:
            fence = marker
            i += 1
            continue

        heading = _parse_heading(line)
        if heading:
            level, title = heading
            while headings and headings[-1][0] >= level:
                headings.pop()
            headings.append(heading)
            i += 1
            continue

        breadcrumb = " > ".join([root_title] + [title for _, title in headings])

        if stripped == BLOCK_DELIMITER:
            if i in plain_delimiters:
                i += 1
                continue

            block = _read_block(lines, i)
            if block.end is None:
                # Unterminated: report once, then rescan the block's lines as
                # ordinary text so nothing after it is lost.
                if block.delimiters[1:]:
                    message = "block has a front but no closing ':::' after its back"
                else:
                    message = "unterminated block: no ':::' after the front"
                span = SourceSpan(lineno, first_line + len(lines) - 1)
                warn(ParseWarning(source_path, span, message))
                plain_delimiters.update(block.delimiters)
                i += 1
                continue

            span = SourceSpan(lineno, first_line + block.end)
            front = "\n".join(block.sections[0]).strip()
            back = "\n".join(block.sections[1]).strip()
            i = block.end + 1
            if not front or not back:
                side = "front" if not front else "back"
                warn(ParseWarning(source_path, span, f"block card has an empty {side}"))
                continue
            yield from _expand(source_path, front, back, span, CardSyntax.BLOCK, breadcrumb)
            continue

        match = _INLINE_DELIMITER.search(line)
        if match:
            span = SourceSpan(lineno, lineno)
            front = line[: match.start()].strip()
            back = line[match.end() :].strip()
            if not front or not back:
                side = "front" if not front else "back"
                warn(ParseWarning(source_path, span, f"inline card has an empty {side}"))
            else:
                yield from _expand(source_path, front, back, span, CardSyntax.INLINE, breadcrumb)

        i += 1


def _read_block(lines: list[str], start: int) -> _Block:
    block = _Block(start=start, delimiters=[start])
    section = 0
    for j in range(start + 1, len(lines)):
        if lines[j].strip() == BLOCK_DELIMITER:
            block.delimiters.append(j)
            if section == 0:
                section = 1
            else:
                block.end = j
                return block
        else:
            block.sections[section].append(lines[j])
    return block


def _fence_marker(stripped: str) -> str | None:
    for marker in FENCE_MARKERS:
        if stripped.startswith(marker):
            return marker
    return None


def _parse_heading(line: str) -> tuple[int, str] | None:
    m = _HEADING.match(line)
    if not m or not m.group(2):
        return None
    return len(m.group(1)), m.group(2)


# ---------- Clozes ----------


def _expand(
    source_path: str,
    front: str,
    back: str,
    span: SourceSpan,
    syntax: CardSyntax,
    heading: str,
) -> Iterator[CardCandidate]:
    clozes = expand_clozes(front, back)
    if not clozes:
        yield CardCandidate(source_path, front, back, span, syntax, heading)
        return

    for index, (cloze_front, cloze_back) in enumerate(clozes):
        yield CardCandidate(
            source_path, cloze_front, cloze_back, span, syntax, heading, cloze_index=index
        )


def expand_clozes(front: str, back: str) -> list[tuple[str, str]]:
    """
    Expand cloze spans in ``back`` into (front, back) pairs, one per span.

    ``{{{x}}}`` hides one span and shows the rest of the text with the other
    spans unwrapped. ``(((x)))`` is progressive: everything after the hidden
    span is dropped. Returns an empty list when ``back`` has no clozes.
    """
    pattern = _BRACE_CLOZE
    progressive = False
    if not _BRACE_CLOZE.search(back):
        if not _PAREN_CLOZE.search(back):
            return []
        pattern = _PAREN_CLOZE
        progressive = True

    def unwrap(text: str) -> str:
        return pattern.sub(lambda m: m.group(1), text)

    cards = []
    for m in pattern.finditer(back):
        if not m.group(1).strip():
            continue
        before = unwrap(back[: m.start()])
        after = "" if progressive else unwrap(back[m.end() :])
        cards.append((f"{front}\n\n{before}{CLOZE_PLACEHOLDER}{after}", m.group(1)))
    return cards
