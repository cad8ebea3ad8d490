"""
Graph store for design canvases.

Nodes, edges and CONNECTS_TO relationships live in their own tables, keyed
by design id. Writes for one design are serialized by a per-design lock in
this process plus a row lock on the design (SELECT ... FOR UPDATE, where
the dialect supports it) across processes. Writes for different designs
run in parallel.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flowforge.core.database import (
    designs,
    get_db_session,
    graph_edges,
    graph_nodes,
    graph_relationships,
)
from flowforge.core.errors import GraphStoreError

logger = logging.getLogger("flowforge.designs")

Records = List[Dict[str, Any]]


class _DesignLocks:
    """Reference-counted lock per design id; entries go away when unused."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, Tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, design_id: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(design_id, (threading.Lock(), 0))
            self._locks[design_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[design_id]
                if users <= 1:
                    del self._locks[design_id]
                else:
                    self._locks[design_id] = (lock, users - 1)


class GraphStore:
    def __init__(self):
        self._locks = _DesignLocks()

    @contextmanager
    def read_transaction(self) -> Iterator[Session]:
        with get_db_session() as session:
            yield session

    @contextmanager
    def write_transaction(self, design_id: str) -> Iterator[Session]:
        """
        One atomic write unit for a design.

        Everything executed on the yielded session commits together or not
        at all.
        """
        with self._locks.hold(design_id):
            with get_db_session() as session:
                session.execute(
                    select(designs.c.id).where(designs.c.id == design_id).with_for_update()
                )
                yield session

    # Statements (run inside a transaction)

    def fetch(self, session: Session, design_id: str) -> Tuple[Records, Records]:
        nodes = session.execute(
            select(graph_nodes)
            .where(graph_nodes.c.design_id == design_id)
            .order_by(graph_nodes.c.created_at, graph_nodes.c.seq)
        ).fetchall()
        edges = session.execute(
            select(graph_edges)
            .where(graph_edges.c.design_id == design_id)
            .order_by(graph_edges.c.created_at, graph_edges.c.seq)
        ).fetchall()
        return [dict(row._mapping) for row in nodes], [dict(row._mapping) for row in edges]

    def clear(self, session: Session, design_id: str) -> None:
        session.execute(delete(graph_relationships).where(graph_relationships.c.design_id == design_id))
        session.execute(delete(graph_nodes).where(graph_nodes.c.design_id == design_id))
        session.execute(delete(graph_edges).where(graph_edges.c.design_id == design_id))

    def insert_nodes(self, session: Session, nodes: Records) -> None:
        if nodes:
            session.execute(insert(graph_nodes), nodes)

    def insert_edges(self, session: Session, edges: Records) -> None:
        if edges:
            session.execute(insert(graph_edges), edges)

    def connect(self, session: Session, design_id: str, edges: Records) -> int:
        """
        Materialize CONNECTS_TO for edges whose endpoints both exist.

        Returns:
            Number of relationships created
        """
        if not edges:
            return 0
        node_ids = set(
            session.execute(
                select(graph_nodes.c.id).where(graph_nodes.c.design_id == design_id)
            ).scalars()
        )
        relationships = [
            {
                "edge_id": edge["id"],
                "design_id": design_id,
                "source_node_id": edge["source"],
                "target_node_id": edge["target"],
                "label": edge.get("label"),
                "original_edge_id": edge["original_id"],
            }
            for edge in edges
            if edge["source"] in node_ids and edge["target"] in node_ids
        ]
        if relationships:
            session.execute(insert(graph_relationships), relationships)
        return len(relationships)

    # Operations

    def read_graph(self, design_id: str) -> Tuple[Records, Records]:
        with self.read_transaction() as session:
            return self.fetch(session, design_id)

    def write_graph(self, design_id: str, nodes: Records, edges: Records, replace: bool = False) -> int:
        """
        Write a design's graph in one transaction.

        With replace=True the existing graph is deleted first; a failure
        anywhere leaves the previous graph untouched.

        Raises:
            GraphStoreError: If the write fails
        """
        try:
            with self.write_transaction(design_id) as session:
                if replace:
                    self.clear(session, design_id)
                self.insert_nodes(session, nodes)
                self.insert_edges(session, edges)
                connected = self.connect(session, design_id, edges)
        except SQLAlchemyError as e:
            logger.error(
                f"Graph write failed: {e}",
                exc_info=True,
                extra={"design_id": design_id, "error_code": "graph_store_error"},
            )
            raise GraphStoreError("Failed to save design graph") from e

        logger.info(
            f"Wrote {len(nodes)} nodes, {len(edges)} edges, {connected} relationships",
            extra={"design_id": design_id},
        )
        return connected

    def delete_graph(self, design_id: str) -> None:
        with self.write_transaction(design_id) as session:
            self.clear(session, design_id)


_graph_store: Optional[GraphStore] = None


def get_graph_store() -> GraphStore:
    global _graph_store
    if _graph_store is None:
        _graph_store = GraphStore()
    return _graph_store


def set_graph_store(store: Optional[GraphStore]) -> None:
    global _graph_store
    _graph_store = store
