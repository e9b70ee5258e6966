"""
Document store: keyed JSON documents grouped in collections.

Two implementations share one interface:
- PostgresDocumentStore: PostgreSQL JSONB table, psycopg2 connection pool
- InMemoryDocumentStore: process-local dicts for development and tests

Sub-collections are addressed by path, e.g. "news_items/<id>/citations".
"""
import copy
import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import psycopg2
from psycopg2.extras import RealDictCursor, execute_values
from psycopg2.pool import SimpleConnectionPool

from backend.services.errors import PersistenceError

logger = logging.getLogger(__name__)

Filter = Tuple[str, str, Any]

OPERATORS = ("==", "!=", "in", "<", "<=", ">", ">=")


def _utc_now_iso() -> str:
    return datetime.utcnow().isoformat()


class DocumentStore:
    """Interface of the document store"""

    def __init__(self, clock: Optional[Callable[[], str]] = None):
        self.clock = clock or _utc_now_iso

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    def upsert_many(self, collection: str, docs: Dict[str, Dict[str, Any]]) -> None:
        """
        Batch upsert. New documents get created_at/updated_at; existing ones
        are merged field by field, keep created_at and get a fresh updated_at.
        Raises PersistenceError if the batch could not be written.
        """
        raise NotImplementedError

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def list_ids(self, collection: str) -> List[str]:
        raise NotImplementedError

    @staticmethod
    def _check_filters(filters: Sequence[Filter]) -> None:
        for field, op, value in filters:
            if op not in OPERATORS:
                raise ValueError(f"Unsupported operator '{op}' for field '{field}'")
            if op == "in" and not isinstance(value, (list, tuple, set)):
                raise ValueError(f"'in' filter on '{field}' needs a list of values")


class InMemoryDocumentStore(DocumentStore):
    """Process-local store. Documents are deep-copied on the way in and out."""

    def __init__(self, clock: Optional[Callable[[], str]] = None):
        super().__init__(clock)
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            if merge and doc_id in docs:
                docs[doc_id].update(copy.deepcopy(data))
            else:
                docs[doc_id] = copy.deepcopy(data)

    def upsert_many(self, collection: str, docs: Dict[str, Dict[str, Any]]) -> None:
        now = self.clock()
        with self._lock:
            current = self._collections.setdefault(collection, {})
            staged = {}
            for doc_id, data in docs.items():
                incoming = copy.deepcopy(data)
                incoming.pop("created_at", None)
                existing = current.get(doc_id)
                if existing is not None:
                    merged = dict(existing)
                    merged.update(incoming)
                    merged["updated_at"] = now
                else:
                    merged = incoming
                    merged["created_at"] = now
                    merged["updated_at"] = now
                staged[doc_id] = merged
            current.update(staged)

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self._check_filters(filters)
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._collections.get(collection, {}).values()]

        results = [d for d in docs if all(_matches(d.get(f), op, v) for f, op, v in filters)]

        if order_by:
            present = [d for d in results if d.get(order_by) is not None]
            missing = [d for d in results if d.get(order_by) is None]
            present.sort(key=lambda d: d[order_by], reverse=descending)
            results = present + missing

        if limit is not None:
            results = results[:limit]
        return results

    def list_ids(self, collection: str) -> List[str]:
        with self._lock:
            return list(self._collections.get(collection, {}).keys())


def _matches(actual: Any, op: str, expected: Any) -> bool:
    if op == "==":
        return actual == expected
    if op == "!=":
        return actual is not None and actual != expected
    if op == "in":
        return actual in expected
    if actual is None or expected is None:
        return False
    try:
        if op == "<":
            return actual < expected
        if op == "<=":
            return actual <= expected
        if op == ">":
            return actual > expected
        if op == ">=":
            return actual >= expected
    except TypeError:
        return False
    return False


class PostgresDocumentStore(DocumentStore):
    """Documents in a single JSONB table keyed by (collection, id)"""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS documents (
            collection TEXT NOT NULL,
            id TEXT NOT NULL,
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            PRIMARY KEY (collection, id)
        )
    """

    SQL_OPERATORS = {
        "==": "=",
        "!=": "<>",
        "<": "<",
        "<=": "<=",
        ">": ">",
        ">=": ">=",
    }

    def __init__(self,
                 dbname: Optional[str] = None,
                 user: Optional[str] = None,
                 password: Optional[str] = None,
                 host: Optional[str] = None,
                 port: Optional[int] = None,
                 min_conn: int = 1,
                 max_conn: int = 10,
                 clock: Optional[Callable[[], str]] = None):
        """
        Initialize the store

        Args:
            dbname: Database name (default: from env or 'news_tracker')
            user: Database user (default: from env or 'postgres')
            password: Database password (default: from env)
            host: Database host (default: from env or 'localhost')
            port: Database port (default: from env or 5432)
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        super().__init__(clock)
        self.dbname = dbname or os.getenv("POSTGRES_DB", "news_tracker")
        self.user = user or os.getenv("POSTGRES_USER", "postgres")
        self.password = password or os.getenv("POSTGRES_PASSWORD", "")
        self.host = host or os.getenv("POSTGRES_HOST", "localhost")
        self.port = port or int(os.getenv("POSTGRES_PORT", "5432"))

        self.pool: Optional[SimpleConnectionPool] = None
        self._init_pool(min_conn, max_conn)

    def _init_pool(self, min_conn: int, max_conn: int):
        try:
            self.pool = SimpleConnectionPool(
                min_conn, max_conn,
                dbname=self.dbname,
                user=self.user,
                password=self.password,
                host=self.host,
                port=self.port
            )
        except psycopg2.Error as e:
            logger.error(f"Error creating connection pool: {e}")
            raise

    @contextmanager
    def get_connection(self):
        """Get connection from pool (context manager)"""
        conn = self.pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.pool.putconn(conn)

    def ensure_schema(self) -> None:
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(self.SCHEMA)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    "SELECT data FROM documents WHERE collection = %s AND id = %s",
                    (collection, doc_id),
                )
                row = cur.fetchone()
                return _load(row["data"]) if row else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        update = "documents.data || EXCLUDED.data" if merge else "EXCLUDED.data"
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(f"""
                        INSERT INTO documents (collection, id, data)
                        VALUES (%s, %s, %s::jsonb)
                        ON CONFLICT (collection, id) DO UPDATE SET data = {update}
                    """, (collection, doc_id, json.dumps(data, default=str)))
        except psycopg2.Error as e:
            raise PersistenceError(f"Failed to write {collection}/{doc_id}: {e}") from e

    def upsert_many(self, collection: str, docs: Dict[str, Dict[str, Any]]) -> None:
        if not docs:
            return
        now = self.clock()
        rows = []
        for doc_id, data in docs.items():
            payload = dict(data)
            payload["created_at"] = now
            payload["updated_at"] = now
            rows.append((collection, doc_id, json.dumps(payload, default=str)))

        # created_at is stripped from the incoming side on conflict so the
        # original creation time survives the merge
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    execute_values(cur, """
                        INSERT INTO documents (collection, id, data)
                        VALUES %s
                        ON CONFLICT (collection, id) DO UPDATE SET
                            data = documents.data || (EXCLUDED.data - 'created_at')
                    """, rows, template="(%s, %s, %s::jsonb)")
        except psycopg2.Error as e:
            raise PersistenceError(f"Batch upsert into {collection} failed: {e}") from e

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self._check_filters(filters)
        clauses = ["collection = %s"]
        params: List[Any] = [collection]

        for field, op, value in filters:
            if op == "==" and value is None:
                clauses.append("COALESCE(data -> %s, 'null'::jsonb) = 'null'::jsonb")
                params.append(field)
            elif op == "in":
                clauses.append("data -> %s = ANY(%s::jsonb[])")
                params.extend([field, [json.dumps(v) for v in value]])
            else:
                clauses.append(f"data -> %s {self.SQL_OPERATORS[op]} %s::jsonb")
                params.extend([field, json.dumps(value)])

        query = "SELECT data FROM documents WHERE " + " AND ".join(clauses)
        if order_by:
            query += f" ORDER BY data -> %s {'DESC' if descending else 'ASC'} NULLS LAST"
            params.append(order_by)
        if limit:
            query += " LIMIT %s"
            params.append(int(limit))

        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                return [_load(row["data"]) for row in cur.fetchall()]

    def list_ids(self, collection: str) -> List[str]:
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM documents WHERE collection = %s ORDER BY id", (collection,))
                return [r[0] for r in cur.fetchall()]

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.closeall()


def _load(data: Any) -> Dict[str, Any]:
    if isinstance(data, str):
        return json.loads(data)
    return dict(data)


def create_document_store() -> DocumentStore:
    """Store selected by NEWS_STORE: 'postgres' or 'memory' (default)."""
    kind = os.getenv("NEWS_STORE", "memory").lower()
    if kind == "postgres":
        store = PostgresDocumentStore()
        store.ensure_schema()
        return store
    if kind != "memory":
        logger.warning(f"Unknown NEWS_STORE '{kind}', using in-memory store")
    return InMemoryDocumentStore()
