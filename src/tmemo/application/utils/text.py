import re
from typing import Any

import yaml  # type: ignore
import yaml.constructor

_WHITESPACE_RUN = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run (newlines included) to one space and trim."""
    return _WHITESPACE_RUN.sub(" ", text).strip()


# ---------- Frontmatter helpers ----------


class UniqueKeyLoader(yaml.SafeLoader):
    """Custom YAML loader that forbids duplicate keys."""

    def construct_mapping(self, node, deep=False):
        mapping = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in mapping:
                raise yaml.constructor.ConstructorError(
                    None, None, f"found duplicate key '{key}'", key_node.start_mark
                )
            mapping.add(key)
        return super().construct_mapping(node, deep)


def split_frontmatter(md_text: str) -> tuple[str | None, str, int]:
    """Split markdown into (raw_yaml, body, body_start_line).
    Uses line-by-line parsing instead of regex for reliability.
    body_start_line is the 1-based line number of the first body line.
    """
    # Handle potential BOM (Byte Order Mark)
    md_text = md_text.lstrip("\ufeff")

    lines = md_text.split("\n")

    # Check for opening ---
    if not lines or lines[0].strip() != "---":
        return None, md_text, 1

    # Find closing ---
    yaml_end_line = None
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            yaml_end_line = i
            break

    if yaml_end_line is None:
        # No closing ---, the whole file is body
        return None, md_text, 1

    raw = "\n".join(lines[1:yaml_end_line])
    body = "\n".join(lines[yaml_end_line + 1 :])
    return raw, body, yaml_end_line + 2


def parse_frontmatter(md_text: str) -> tuple[dict[str, Any], str, int]:
    """Parse YAML frontmatter from markdown text.
    Returns (meta, body, body_start_line). Broken YAML yields
    ``{"__yaml_error__": message}`` so callers can report it and move on.
    """
    raw, body, body_start = split_frontmatter(md_text)
    if raw is None:
        return {}, body, body_start

    # Fix tabs (common user error)
    if "\t" in raw:
        raw = raw.replace("\t", "  ")

    try:
        meta = yaml.load(raw, Loader=UniqueKeyLoader) or {}
    except yaml.YAMLError as e:
        return {"__yaml_error__": str(e)}, body, body_start

    if not isinstance(meta, dict):
        return {"__yaml_error__": "frontmatter is not a mapping"}, body, body_start

    return meta, body, body_start
