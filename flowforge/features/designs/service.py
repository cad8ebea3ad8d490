"""
Design service.

Relational design metadata (designs, design_owners, design_images) plus the
canvas graph in the graph store. Every operation that creates a design
checks the owner's quota first and writes nothing when it is exhausted.

Ownership failures surface as NotFoundError so callers cannot discover
other users' design ids.
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import Session

from flowforge.core.database import design_images, design_owners, designs, get_db_session
from flowforge.core.errors import ConflictError, NotFoundError, QuotaExceededError, ValidationError
from flowforge.features.billing.periods import as_utc, utc_now
from flowforge.features.designs.codec import (
    edge_records,
    edge_to_client,
    node_records,
    node_to_client,
    remap_edge_endpoints,
    remap_records,
)
from flowforge.features.designs.graph_store import get_graph_store
from flowforge.features.users.service import get_user
from flowforge.models.design import Design, DesignVisibility, GraphDocument
from flowforge.models.user import User

logger = logging.getLogger("flowforge.designs")

DEFAULT_TITLE = "Untitled design"


def _row_to_design(row) -> Design:
    return Design(
        id=row.id,
        title=row.title,
        visibility=DesignVisibility(row.visibility),
        prompt=row.prompt,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _require_user(user_id: str) -> User:
    user = get_user(user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


def _is_owner(session: Session, design_id: str, user_id: str) -> bool:
    return session.execute(
        select(design_owners.c.design_id).where(
            design_owners.c.design_id == design_id,
            design_owners.c.user_id == user_id,
        )
    ).first() is not None


def _get_design_row(session: Session, design_id: str):
    return session.execute(select(designs).where(designs.c.id == design_id)).first()


def _require_owned(session: Session, design_id: str, user_id: str):
    row = _get_design_row(session, design_id)
    if row is None or not _is_owner(session, design_id, user_id):
        raise NotFoundError("Design not found.")
    return row


def count_owned_designs(user_id: str) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count()).select_from(design_owners).where(design_owners.c.user_id == user_id)
        ).scalar_one()


def check_quota(user: User) -> None:
    """
    Raises:
        QuotaExceededError: If the user owns max_designs designs already
    """
    if user.unlimited_designs:
        return
    owned = count_owned_designs(user.id)
    if owned >= user.max_designs:
        logger.info(
            f"Design quota reached ({owned}/{user.max_designs})",
            extra={"user_id": user.id, "error_code": "quota_exceeded"},
        )
        raise QuotaExceededError(
            f"Design limit of {user.max_designs} reached. Upgrade your plan to create more designs.",
            details={"maxDesigns": user.max_designs, "designCount": owned},
        )


def _insert_design(
    user_id: str,
    title: Optional[str],
    visibility: DesignVisibility,
    prompt: Optional[str],
) -> Design:
    design_id = str(uuid4())
    now = utc_now()
    with get_db_session() as session:
        session.execute(
            insert(designs).values(
                id=design_id,
                title=title or DEFAULT_TITLE,
                visibility=visibility.value,
                prompt=prompt,
                created_at=now,
                updated_at=now,
            )
        )
        session.execute(insert(design_owners).values(design_id=design_id, user_id=user_id, created_at=now))
        return _row_to_design(_get_design_row(session, design_id))


def _remove_design_row(design_id: str) -> None:
    with get_db_session() as session:
        session.execute(delete(designs).where(designs.c.id == design_id))


def _write_new_graph(design: Design, nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]]) -> None:
    # The relational row is already committed; undo it if the graph cannot be written
    try:
        get_graph_store().write_graph(design.id, nodes, edges)
    except Exception:
        _remove_design_row(design.id)
        raise


def create_design(
    user_id: str,
    document: GraphDocument,
    prompt: Optional[str] = None,
    title: Optional[str] = None,
    visibility: DesignVisibility = DesignVisibility.PRIVATE,
) -> Dict[str, Any]:
    """
    Create a design with its canvas graph.

    Raises:
        QuotaExceededError: Owner is at the plan's design limit
        GraphStoreError: Graph write failed (the design row is removed again)
    """
    user = _require_user(user_id)
    check_quota(user)

    design = _insert_design(user.id, title, visibility, prompt)
    now = utc_now()
    _write_new_graph(
        design,
        node_records(design.id, user.id, document.nodes, now),
        edge_records(design.id, user.id, document.edges, now),
    )

    logger.info("Design created", extra={"user_id": user.id, "design_id": design.id})
    return {
        "design": design,
        "nodeCount": len(document.nodes),
        "edgeCount": len(document.edges),
    }


def get_design_graph(user_id: Optional[str], design_id: str) -> Dict[str, Any]:
    """
    Client document for a design.

    Public designs are readable by anyone; private ones only by owners.
    """
    with get_db_session() as session:
        row = _get_design_row(session, design_id)
        if row is None:
            raise NotFoundError("Design not found.")
        if row.visibility != DesignVisibility.PUBLIC.value:
            if not user_id or not _is_owner(session, design_id, user_id):
                raise NotFoundError("Design not found.")

    node_rows, edge_rows = get_graph_store().read_graph(design_id)
    nodes = [node_to_client(record) for record in node_rows]
    edges = [edge_to_client(record) for record in edge_rows]
    return {
        "nodes": nodes,
        "edges": edges,
        "nodeCount": len(nodes),
        "edgeCount": len(edges),
    }


def save_design(user_id: str, design_id: str, document: GraphDocument) -> Dict[str, Any]:
    """Replace the whole graph of an owned design and return it as stored."""
    with get_db_session() as session:
        _require_owned(session, design_id, user_id)

    now = utc_now()
    get_graph_store().write_graph(
        design_id,
        node_records(design_id, user_id, document.nodes, now),
        edge_records(design_id, user_id, document.edges, now),
        replace=True,
    )

    with get_db_session() as session:
        session.execute(update(designs).where(designs.c.id == design_id).values(updated_at=now))

    logger.info("Design saved", extra={"user_id": user_id, "design_id": design_id})
    return get_design_graph(user_id, design_id)


def duplicate_design(user_id: str, source_design_id: str) -> Dict[str, Any]:
    """
    Copy a public design into the user's account.

    Raises:
        NotFoundError: Source missing or private to someone else
        ConflictError: User already owns the source design
        QuotaExceededError: Owner is at the plan's design limit
    """
    user = _require_user(user_id)
    with get_db_session() as session:
        source = _get_design_row(session, source_design_id)
        if source is None:
            raise NotFoundError("Design not found.")
        owned = _is_owner(session, source_design_id, user.id)
    if owned:
        raise ConflictError("Design already belongs to this user")
    if source.visibility != DesignVisibility.PUBLIC.value:
        raise NotFoundError("Design not found.")

    check_quota(user)

    design = _insert_design(user.id, source.title, DesignVisibility.PRIVATE, source.prompt)
    node_rows, edge_rows = get_graph_store().read_graph(source_design_id)

    now = utc_now()
    nodes = remap_records(node_rows, design.id, user.id, now)
    node_id_map = {old["id"]: new["id"] for old, new in zip(node_rows, nodes)}
    edges = remap_records(edge_rows, design.id, user.id, now)
    remap_edge_endpoints(edges, node_id_map, design.id)
    _write_new_graph(design, nodes, edges)

    logger.info(
        f"Design duplicated from {source_design_id}",
        extra={"user_id": user.id, "design_id": design.id},
    )
    return {"design": design, "nodeCount": len(nodes), "edgeCount": len(edges)}


def list_public_designs(limit: int = 100) -> List[Design]:
    with get_db_session() as session:
        rows = session.execute(
            select(designs)
            .where(designs.c.visibility == DesignVisibility.PUBLIC.value)
            .order_by(designs.c.created_at.desc())
            .limit(limit)
        ).fetchall()
        return [_row_to_design(row) for row in rows]


def list_user_designs(user_id: str) -> List[Design]:
    with get_db_session() as session:
        rows = session.execute(
            select(designs)
            .join(design_owners, design_owners.c.design_id == designs.c.id)
            .where(design_owners.c.user_id == user_id)
            .order_by(designs.c.created_at.desc())
        ).fetchall()
        return [_row_to_design(row) for row in rows]


def update_design_data(user_id: str, design_id: str, changes: Dict[str, Any]) -> Design:
    """Update title, visibility or prompt of an owned design."""
    allowed = {key: value for key, value in changes.items() if key in ("title", "visibility", "prompt")}
    if "title" in allowed and not (allowed["title"] or "").strip():
        raise ValidationError("Title cannot be empty")
    if "visibility" in allowed:
        allowed["visibility"] = DesignVisibility(allowed["visibility"]).value

    with get_db_session() as session:
        _require_owned(session, design_id, user_id)
        if allowed:
            allowed["updated_at"] = utc_now()
            session.execute(update(designs).where(designs.c.id == design_id).values(**allowed))
        return _row_to_design(_get_design_row(session, design_id))


def delete_design(user_id: str, design_id: str) -> None:
    """Remove an owned design: graph first, then the relational rows."""
    with get_db_session() as session:
        _require_owned(session, design_id, user_id)

    get_graph_store().delete_graph(design_id)
    _remove_design_row(design_id)
    logger.info("Design deleted", extra={"user_id": user_id, "design_id": design_id})


def add_design_image(user_id: str, design_id: str, url: str) -> Dict[str, Any]:
    """Record the URL of an image already uploaded to object storage."""
    if not url:
        raise ValidationError("Image URL is required")
    now = utc_now()
    with get_db_session() as session:
        _require_owned(session, design_id, user_id)
        result = session.execute(
            insert(design_images).values(design_id=design_id, user_id=user_id, url=url, created_at=now)
        )
        image_id = result.inserted_primary_key[0]

    return {"id": image_id, "designId": design_id, "url": url, "createdAt": now}
