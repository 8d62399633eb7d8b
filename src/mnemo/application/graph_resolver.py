"""
Graph resolver for building the link graph of a vault.

Builds a directed graph from the document store's link metadata and
computes a PageRank importance score per document.
"""

import logging
from collections.abc import Iterable, Mapping

from mnemo.domain.constants import (
    PAGERANK_DAMPING,
    PAGERANK_EPSILON,
    PAGERANK_MAX_ITERATIONS,
)
from mnemo.domain.graph import LinkGraph

logger = logging.getLogger(__name__)


def build_link_graph(
    documents: Iterable[str],
    link_map: Mapping[str, Iterable[str]],
) -> LinkGraph:
    """
    Build a link graph with one node per document.

    Self-links are dropped and links to documents that are not in
    ``documents`` are ignored.
    """
    graph = LinkGraph()
    for doc in documents:
        graph.add_node(doc)

    for source, targets in link_map.items():
        if source not in graph.nodes:
            logger.debug(f"Ignoring links from unknown document {source}")
            continue
        for target in targets:
            if target not in graph.nodes:
                logger.debug(f"Ignoring link {source} -> {target}: target not in vault")
                continue
            graph.add_link(source, target)

    return graph


def compute_importance(
    graph: LinkGraph,
    damping_factor: float = PAGERANK_DAMPING,
    epsilon: float = PAGERANK_EPSILON,
    max_iterations: int = PAGERANK_MAX_ITERATIONS,
) -> dict[str, float]:
    """
    Compute PageRank by power iteration.

    Args:
        graph: The link graph
        damping_factor: Probability of following a link (default: 0.85)
        epsilon: Stop when the L1 change of one iteration drops below this
        max_iterations: Hard cap on iterations (default: 100)

    Returns:
        Mapping of document -> score. Scores sum to 1. Empty for an empty graph.
    """
    nodes = graph.sorted_nodes()
    n = len(nodes)
    if n == 0:
        return {}

    scores = {node: 1.0 / n for node in nodes}
    base = (1.0 - damping_factor) / n
    dangling = [node for node in nodes if graph.out_degree(node) == 0]

    for iteration in range(1, max_iterations + 1):
        dangling_share = damping_factor * sum(scores[node] for node in dangling) / n
        new_scores = {node: base + dangling_share for node in nodes}

        for node in nodes:
            out_degree = graph.out_degree(node)
            if out_degree == 0:
                continue
            share = damping_factor * scores[node] / out_degree
            for target in graph.get_links(node):
                new_scores[target] += share

        delta = sum(abs(new_scores[node] - scores[node]) for node in nodes)
        scores = new_scores
        if delta < epsilon:
            logger.debug(f"PageRank converged after {iteration} iterations (delta={delta:.2e})")
            break
    else:
        logger.debug(f"PageRank stopped at max_iterations={max_iterations}")

    total = sum(scores.values())
    return {node: score / total for node, score in scores.items()}


def linked_importance(graph: LinkGraph, scores: Mapping[str, float], document: str) -> float:
    """Sum of the importance of every document that ``document`` links to."""
    return sum(scores.get(target, 0.0) for target in graph.get_links(document))
