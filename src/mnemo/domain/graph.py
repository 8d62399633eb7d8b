"""Link graph between vault documents."""

from dataclasses import dataclass, field


@dataclass
class LinkGraph:
    """
    Directed graph of "document A links to document B".

    Edges are deduplicated and self-links are dropped.
    """

    nodes: set[str] = field(default_factory=set)
    _outgoing: dict[str, set[str]] = field(default_factory=dict, init=False, repr=False)
    _incoming: dict[str, set[str]] = field(default_factory=dict, init=False, repr=False)

    def add_node(self, document: str) -> None:
        self.nodes.add(document)
        self._outgoing.setdefault(document, set())
        self._incoming.setdefault(document, set())

    def add_link(self, source: str, target: str) -> bool:
        """Add an edge. Returns False if it was a self-link or already present."""
        if source == target:
            return False
        self.add_node(source)
        self.add_node(target)
        if target in self._outgoing[source]:
            return False
        self._outgoing[source].add(target)
        self._incoming[target].add(source)
        return True

    def get_links(self, document: str) -> list[str]:
        return sorted(self._outgoing.get(document, ()))

    def get_backlinks(self, document: str) -> list[str]:
        return sorted(self._incoming.get(document, ()))

    def out_degree(self, document: str) -> int:
        return len(self._outgoing.get(document, ()))

    @property
    def edge_count(self) -> int:
        return sum(len(targets) for targets in self._outgoing.values())

    def sorted_nodes(self) -> list[str]:
        return sorted(self.nodes)
