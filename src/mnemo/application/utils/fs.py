from collections.abc import Iterator
from pathlib import Path


def iter_markdown_files(root: Path) -> Iterator[Path]:
    """
    Yield every ``.md`` file under ``root`` in sorted order.

    Hidden directories (``.obsidian``, ``.trash``, ``.git`` ...) are skipped.
    A single file path yields just that file.
    """
    if root.is_file():
        if root.suffix.lower() == ".md":
            yield root
        return

    for p in sorted(root.rglob("*.md")):
        rel_parts = p.relative_to(root).parts
        if any(part.startswith(".") for part in rel_parts[:-1]):
            continue
        if p.is_file():
            yield p
