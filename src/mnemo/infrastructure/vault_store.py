import logging
import re
from pathlib import Path, PurePosixPath
from urllib.parse import unquote

from mnemo.application.utils.fs import iter_markdown_files
from mnemo.domain.interfaces import DocumentStore

WIKILINK_RE = re.compile(r"!?\[\[([^\]|#^]+)(?:[#^][^\]|]*)?(?:\|[^\]]*)?\]\]")
MDLINK_RE = re.compile(r"\[[^\]]*\]\(([^)\s]+\.md)(?:#[^)]*)?\)")


class VaultDocumentStore(DocumentStore):
    """
    Document store over a directory of Markdown files.

    Documents are keyed by their vault-relative POSIX path
    (``Topics/Graphs.md``). Links are read from ``[[wikilinks]]`` and
    ``[text](relative/path.md)`` links that resolve to a file in the vault.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.logger = logging.getLogger(__name__)
        self._by_stem: dict[str, str] | None = None

    def list_documents(self) -> list[str]:
        docs = [p.relative_to(self.root).as_posix() for p in iter_markdown_files(self.root)]
        self._by_stem = {}
        for doc in docs:
            # First path in sorted order wins, like a shortest-path lookup.
            self._by_stem.setdefault(PurePosixPath(doc).stem.lower(), doc)
        return docs

    def _path(self, document: str) -> Path:
        return self.root / document

    def get_text(self, document: str) -> str:
        return self._path(document).read_text(encoding="utf-8")

    def write_text(self, document: str, text: str) -> None:
        self._path(document).write_text(text, encoding="utf-8")
        self.logger.debug(f"[write] {document}")

    def get_links(self, document: str) -> set[str]:
        if self._by_stem is None:
            self.list_documents()

        try:
            text = self.get_text(document)
        except (OSError, UnicodeDecodeError) as e:
            self.logger.warning(f"Failed to read {document}: {e}")
            return set()

        links: set[str] = set()
        for m in WIKILINK_RE.finditer(text):
            target = self._resolve_wikilink(m.group(1).strip())
            if target:
                links.add(target)
        for m in MDLINK_RE.finditer(text):
            target = self._resolve_relative(document, unquote(m.group(1)))
            if target:
                links.add(target)
        links.discard(document)
        return links

    def _resolve_wikilink(self, name: str) -> str | None:
        if not name:
            return None
        if not name.lower().endswith(".md"):
            name = f"{name}.md"
        if "/" in name and self._path(name).is_file():
            return PurePosixPath(name).as_posix()
        return (self._by_stem or {}).get(PurePosixPath(name).stem.lower())

    def _resolve_relative(self, document: str, href: str) -> str | None:
        if "://" in href:
            return None
        candidate = (self._path(document).parent / href).resolve()
        try:
            rel = candidate.relative_to(self.root.resolve())
        except ValueError:
            return None
        return rel.as_posix() if candidate.is_file() else None
