"""Read-only graph and list views over the traversal ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List

from .ledger import TraversalLedger
from .records import Transfer


@dataclass
class GraphNode:
    id: str
    connections: List[Transfer] = field(default_factory=list)


class GraphProjection:
    """Nodes in discovery order; ``AddressRecord.graph_index`` points into it."""

    def __init__(self, ledger: TraversalLedger) -> None:
        self._ledger = ledger
        self.nodes: List[GraphNode] = []

    def register(self, addresses: Iterable[str]) -> List[str]:
        """Append nodes for addresses not yet in the graph; returns those added."""
        added: List[str] = []
        for address in addresses:
            record = self._ledger.get(address)
            if record is None or record.graph_index is not None:
                continue
            record.graph_index = len(self.nodes)
            self.nodes.append(GraphNode(id=record.address))
            added.append(record.address)
        return added

    def add_connections(self, address: str, transfers: Iterable[Transfer]) -> None:
        record = self._ledger.get(address)
        if record is None or record.graph_index is None:
            raise KeyError(f"{address} has no graph node")
        self.nodes[record.graph_index].connections.extend(transfers)

    def snapshot(self) -> List[dict]:
        return [
            {"id": node.id, "connections": list(node.connections)}
            for node in self.nodes
        ]

    def transfer_list(self) -> List[Transfer]:
        """Every traced transfer, ordered by block number (stable)."""
        transfers: List[Transfer] = []
        for record in self._ledger.records.values():
            transfers.extend(record.transfers)
        return sorted(transfers, key=lambda transfer: transfer.block_number)

    def __len__(self) -> int:
        return len(self.nodes)


__all__ = ["GraphNode", "GraphProjection"]
