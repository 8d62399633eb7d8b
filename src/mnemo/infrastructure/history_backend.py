import logging
import os
import tempfile
from pathlib import Path

from mnemo.domain.interfaces import HistoryBackend

logger = logging.getLogger(__name__)


class FileHistoryBackend(HistoryBackend):
    """
    Review history stored as a JSON file at a fixed path.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace`` so a crash never leaves a half-written file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read_text(self) -> str:
        return self.path.read_text(encoding="utf-8")

    def ensure_parent(self) -> None:
        # Raises FileExistsError if the parent path is a regular file.
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def write_text(self, content: str) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"[write] {self.path}: {len(content)} bytes")
