"""
Bot Detection - Coordinated Network Detection.

============================================================
PURPOSE
============================================================
Find clusters of accounts linked by shared evidence.

Every signal with related accounts contributes undirected
edges (signal.user_id <-> related account). Connected
components of at least `min_network_size` members are
candidate coordinated bot networks.

============================================================
ORDERING
============================================================
networkx yields components in node insertion order, which
depends on signal order. Members are sorted by their string
form and components by their first member, so the
same signals always give the same result.

============================================================
"""

import logging
from typing import Iterable, List
from uuid import UUID

import networkx as nx

from .types import BotDetectionSignal


logger = logging.getLogger(__name__)


# ============================================================
# GRAPH
# ============================================================


def build_account_graph(signals: Iterable[BotDetectionSignal]) -> nx.Graph:
    """
    Build the undirected account graph from related-account edges.

    Signals without related accounts add nothing. A self-reference
    registers the node without adding a loop.
    """
    graph = nx.Graph()
    for signal in signals:
        for related in signal.related_accounts:
            if related == signal.user_id:
                graph.add_node(related)
            else:
                graph.add_edge(signal.user_id, related)
    return graph


def connected_components(graph: nx.Graph) -> List[List[UUID]]:
    """Every component (singletons included) as a sorted member list."""
    components = [
        sorted(component, key=str)
        for component in nx.connected_components(graph)
    ]
    components.sort(key=lambda members: str(members[0]))
    return components


# ============================================================
# DETECTOR
# ============================================================


class NetworkDetector:
    """
    Extracts coordinated bot networks from a batch of signals.

    Read-only: never touches storage or signal state.
    """

    def __init__(self, min_network_size: int = 3) -> None:
        self.min_network_size = min_network_size

    def detect_coordinated_bots(
        self,
        signals: Iterable[BotDetectionSignal],
    ) -> List[List[UUID]]:
        graph = build_account_graph(signals)
        networks = [
            component for component in connected_components(graph)
            if len(component) >= self.min_network_size
        ]

        if networks:
            logger.info(
                f"Detected {len(networks)} coordinated networks across "
                f"{graph.number_of_nodes()} linked accounts"
            )
        return networks
