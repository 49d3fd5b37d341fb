import logging
from dataclasses import dataclass, field
from pathlib import Path

from tmemo.application.extractor import extract_cards
from tmemo.application.utils.fs import iter_markdown_files
from tmemo.domain.exceptions import ParseWarning
from tmemo.domain.models import CardCandidate


@dataclass
class ScanResult:
    """Cards found in a vault, in file-then-position order."""

    candidates: list[CardCandidate] = field(default_factory=list)
    warnings: list[ParseWarning] = field(default_factory=list)
    files_scanned: int = 0
    files_skipped: list[tuple[Path, str]] = field(default_factory=list)


class VaultService:
    def __init__(self, root: Path):
        self.root = Path(root)
        self.base = self.root if self.root.is_dir() else self.root.parent
        self.logger = logging.getLogger(__name__)

    def scan(self) -> ScanResult:
        result = ScanResult()

        for p in iter_markdown_files(self.root):
            ok, text, reason = self._read_file(p)
            if not ok:
                self.logger.warning(f"[vault] Skipped {p}: {reason}")
                result.files_skipped.append((p, reason or "unknown"))
                continue

            result.files_scanned += 1
            before = len(result.candidates)
            cards = extract_cards(self._relative(p), text, on_warning=self._collect(result))
            result.candidates.extend(cards)
            self.logger.debug(
                f"[vault] Accepted {p.name} cards={len(result.candidates) - before}"
            )

        self.logger.info(
            f"Scanned {result.files_scanned} files: {len(result.candidates)} cards, "
            f"{len(result.warnings)} warnings"
        )
        return result

    def _collect(self, result: ScanResult):
        def sink(warning: ParseWarning) -> None:
            self.logger.warning(f"[parse] {warning}")
            result.warnings.append(warning)

        return sink

    def _read_file(self, md_file: Path) -> tuple[bool, str, str | None]:
        # Returns: (ok, text, reason)
        try:
            text = md_file.read_text(encoding="utf-8", errors="strict")
        except UnicodeDecodeError as e:
            return (False, "", f"decode_error:{e}")
        except OSError as e:
            return (False, "", f"read_error:{e}")
        return (True, text, None)

    def _relative(self, p: Path) -> str:
        try:
            return p.relative_to(self.base).as_posix()
        except ValueError:
            return p.as_posix()
