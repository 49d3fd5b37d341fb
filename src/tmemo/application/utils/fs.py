import logging
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)


def iter_markdown_files(root: Path) -> Iterator[Path]:
    """
    Yield every ``*.md`` file under ``root`` in sorted path order.

    Hidden files and directories (leading dot) are skipped. Directories that
    cannot be listed are logged and skipped.
    """
    root = Path(root)
    if root.is_file():
        if root.suffix.lower() == ".md":
            yield root
        return

    try:
        entries = sorted(root.iterdir(), key=lambda p: p.name)
    except OSError as e:
        logger.warning(f"Cannot list {root}: {e}")
        return

    for entry in entries:
        if entry.name.startswith("."):
            continue
        if entry.is_dir():
            yield from iter_markdown_files(entry)
        elif entry.suffix.lower() == ".md" and entry.is_file():
            yield entry
