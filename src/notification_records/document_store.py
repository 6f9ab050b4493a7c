from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa

_DOCUMENTS_TABLE_NAME = "notification_documents"
_METADATA = sa.MetaData()

_DOCUMENTS_TABLE = sa.Table(
    _DOCUMENTS_TABLE_NAME,
    _METADATA,
    sa.Column("kind", sa.String(64), nullable=False),
    sa.Column("namespace", sa.String(128), nullable=False),
    sa.Column("name", sa.String(253), nullable=False),
    sa.Column("version", sa.Integer, nullable=False, default=1),
    sa.Column("spec_json", sa.JSON, nullable=False, default=dict),
    sa.Column("status_json", sa.JSON, nullable=False, default=dict),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint("kind", "namespace", "name", name="pk_notification_documents"),
    sa.Index("ix_notification_documents_kind_namespace", "kind", "namespace"),
)

_ENGINES: dict[str, sa.Engine] = {}
_INITIALIZED_DATABASE_URLS: set[str] = set()


class DocumentStoreError(RuntimeError):
    """Base class for document store failures."""


class DocumentNotFoundError(DocumentStoreError, LookupError):
    def __init__(self, kind: str, namespace: str, name: str):
        super().__init__(f"{kind} {namespace}/{name} not found")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class DocumentAlreadyExistsError(DocumentStoreError):
    def __init__(self, kind: str, namespace: str, name: str):
        super().__init__(f"{kind} {namespace}/{name} already exists")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class DocumentConflictError(DocumentStoreError):
    """Raised when a write targets a version that is no longer current."""

    def __init__(self, kind: str, namespace: str, name: str, expected_version: int):
        super().__init__(
            f"{kind} {namespace}/{name} was modified concurrently (expected version {expected_version})"
        )
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.expected_version = expected_version


@dataclass
class StoredDocument:
    kind: str
    namespace: str
    name: str
    version: int
    spec: dict[str, Any] = field(default_factory=dict)
    status: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _resolve_database_url(database_url: str | None = None) -> str:
    db_url = (database_url or os.getenv("DATABASE_URL", "")).strip()
    if not db_url:
        raise ValueError("DATABASE_URL is required for notification document persistence")
    return db_url


def _get_engine(database_url: str) -> sa.Engine:
    if database_url not in _ENGINES:
        _ENGINES[database_url] = sa.create_engine(database_url, future=True, pool_pre_ping=True)
    return _ENGINES[database_url]


def _ensure_documents_table(database_url: str | None = None) -> sa.Engine:
    resolved_url = _resolve_database_url(database_url)
    engine = _get_engine(resolved_url)
    if resolved_url not in _INITIALIZED_DATABASE_URLS:
        _METADATA.create_all(engine, tables=[_DOCUMENTS_TABLE], checkfirst=True)
        _INITIALIZED_DATABASE_URLS.add(resolved_url)
    return engine


def _ensure_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _key_clause(kind: str, namespace: str, name: str) -> sa.ColumnElement[bool]:
    return sa.and_(
        _DOCUMENTS_TABLE.c.kind == str(kind).strip(),
        _DOCUMENTS_TABLE.c.namespace == str(namespace).strip(),
        _DOCUMENTS_TABLE.c.name == str(name).strip(),
    )


def _row_to_document(row: dict[str, Any]) -> StoredDocument:
    return StoredDocument(
        kind=str(row["kind"]),
        namespace=str(row["namespace"]),
        name=str(row["name"]),
        version=int(row["version"]),
        spec=dict(row.get("spec_json") or {}),
        status=dict(row.get("status_json") or {}),
        created_at=_ensure_datetime(row.get("created_at")),
        updated_at=_ensure_datetime(row.get("updated_at")),
    )


def get_document(kind: str, namespace: str, name: str, database_url: str | None = None) -> StoredDocument:
    engine = _ensure_documents_table(database_url)
    query = sa.select(_DOCUMENTS_TABLE).where(_key_clause(kind, namespace, name))
    with engine.connect() as conn:
        row = conn.execute(query).mappings().first()
    if row is None:
        raise DocumentNotFoundError(kind, namespace, name)
    return _row_to_document(dict(row))


def list_documents(kind: str, namespace: str, database_url: str | None = None) -> list[StoredDocument]:
    engine = _ensure_documents_table(database_url)
    query = (
        sa.select(_DOCUMENTS_TABLE)
        .where(_DOCUMENTS_TABLE.c.kind == str(kind).strip())
        .where(_DOCUMENTS_TABLE.c.namespace == str(namespace).strip())
        .order_by(_DOCUMENTS_TABLE.c.name.asc())
    )
    with engine.connect() as conn:
        rows = conn.execute(query).mappings().all()
    return [_row_to_document(dict(row)) for row in rows]


def create_document(
    kind: str,
    namespace: str,
    name: str,
    spec: dict[str, Any] | None = None,
    database_url: str | None = None,
) -> StoredDocument:
    """Insert a new document. Status always starts empty and is written separately."""
    normalized_name = str(name).strip()
    if not normalized_name:
        raise ValueError("Document requires non-empty name")

    engine = _ensure_documents_table(database_url)
    now = datetime.now(timezone.utc)
    payload = {
        "kind": str(kind).strip(),
        "namespace": str(namespace).strip(),
        "name": normalized_name,
        "version": 1,
        "spec_json": dict(spec or {}),
        "status_json": {},
        "created_at": now,
        "updated_at": now,
    }
    try:
        with engine.begin() as conn:
            conn.execute(_DOCUMENTS_TABLE.insert().values(**payload))
    except sa.exc.IntegrityError as exc:
        raise DocumentAlreadyExistsError(kind, namespace, normalized_name) from exc

    return _row_to_document(payload)


def update_document_status(
    kind: str,
    namespace: str,
    name: str,
    status: dict[str, Any],
    *,
    expected_version: int,
    database_url: str | None = None,
) -> StoredDocument:
    """Replace a document status if its version still matches ``expected_version``."""
    engine = _ensure_documents_table(database_url)
    now = datetime.now(timezone.utc)

    with engine.begin() as conn:
        result = conn.execute(
            _DOCUMENTS_TABLE.update()
            .where(_key_clause(kind, namespace, name))
            .where(_DOCUMENTS_TABLE.c.version == int(expected_version))
            .values(
                status_json=dict(status),
                version=_DOCUMENTS_TABLE.c.version + 1,
                updated_at=now,
            )
        )
        if result.rowcount == 0:
            exists = conn.execute(
                sa.select(_DOCUMENTS_TABLE.c.version).where(_key_clause(kind, namespace, name))
            ).first()
            if exists is None:
                raise DocumentNotFoundError(kind, namespace, name)
            raise DocumentConflictError(kind, namespace, name, int(expected_version))
        row = conn.execute(sa.select(_DOCUMENTS_TABLE).where(_key_clause(kind, namespace, name))).mappings().first()

    return _row_to_document(dict(row))


def apply_document_spec(
    kind: str,
    namespace: str,
    name: str,
    spec: dict[str, Any],
    database_url: str | None = None,
) -> StoredDocument:
    """Create the document or replace its spec, leaving any status untouched."""
    try:
        return create_document(kind, namespace, name, spec, database_url=database_url)
    except DocumentAlreadyExistsError:
        pass

    engine = _ensure_documents_table(database_url)
    with engine.begin() as conn:
        conn.execute(
            _DOCUMENTS_TABLE.update()
            .where(_key_clause(kind, namespace, name))
            .values(
                spec_json=dict(spec),
                version=_DOCUMENTS_TABLE.c.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
        )
        row = conn.execute(sa.select(_DOCUMENTS_TABLE).where(_key_clause(kind, namespace, name))).mappings().first()
    if row is None:
        raise DocumentNotFoundError(kind, namespace, name)
    return _row_to_document(dict(row))
