"""
Ports (interfaces) for the collaborators of the scheduling core.

Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod


class DocumentStore(ABC):
    """
    Port for the store that owns document content and link metadata.

    Implementations:
        - VaultDocumentStore: Markdown files under a vault directory.
    """

    @abstractmethod
    def list_documents(self) -> list[str]:
        """Return every document key, in a stable order."""
        pass

    @abstractmethod
    def get_links(self, document: str) -> set[str]:
        """Return the documents that ``document`` links to."""
        pass

    @abstractmethod
    def get_text(self, document: str) -> str:
        pass

    @abstractmethod
    def write_text(self, document: str, text: str) -> None:
        pass


class HistoryBackend(ABC):
    """
    Port for the resource backing the review history document.

    Implementations:
        - FileHistoryBackend: a JSON file at a fixed path.
    """

    @abstractmethod
    def exists(self) -> bool:
        pass

    @abstractmethod
    def read_text(self) -> str:
        pass

    @abstractmethod
    def write_text(self, content: str) -> None:
        pass

    @abstractmethod
    def ensure_parent(self) -> None:
        """
        Create the containing directory.

        Must tolerate a directory that already exists and raise otherwise.
        """
        pass
