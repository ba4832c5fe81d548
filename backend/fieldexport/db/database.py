"""Document store access for projects, features and observations."""

from __future__ import annotations

import functools
import json
import logging
from typing import TYPE_CHECKING, Protocol, cast

import psycopg2
import psycopg2.extensions
import psycopg2.extras

from fieldexport.core import errors
from fieldexport.db import models as db_models

if TYPE_CHECKING:
    import pathlib

    from fieldexport.core import config

logger = logging.getLogger(__name__)


class DocumentStoreProtocol(Protocol):
    """Protocol interface for reading the field data document graph.

    Implementations return records in a stable order: the order of the
    returned feature and observation lists is the order rows are exported
    in. Each call is a single read with no retry.
    """

    def fetch_project(self, project_id: str) -> db_models.Project | None: ...

    def fetch_features_by_layer_id(
        self,
        project_id: str,
        layer_id: str | None,
    ) -> list[db_models.Feature]: ...

    def fetch_observations_by_layer_id(
        self,
        project_id: str,
        layer_id: str | None,
    ) -> list[db_models.Observation]: ...


class InMemoryDocumentStore(DocumentStoreProtocol):
    """Simple in-memory store for tests and local development.

    Raw documents are kept per project in insertion order and parsed on
    every fetch, so each export sees a fresh point-in-time snapshot.
    """

    def __init__(self) -> None:
        """Initialize an empty in-memory store."""
        self._projects: dict[str, db_models.Document] = {}
        self._features: dict[str, dict[str, db_models.Document]] = {}
        self._observations: dict[str, dict[str, db_models.Document]] = {}

    def add_project(self, project_id: str, doc: db_models.Document) -> None:
        self._projects[project_id] = doc
        self._features.setdefault(project_id, {})
        self._observations.setdefault(project_id, {})

    def add_feature(
        self,
        project_id: str,
        feature_id: str,
        doc: db_models.Document,
    ) -> None:
        self._features.setdefault(project_id, {})[feature_id] = doc

    def add_observation(
        self,
        project_id: str,
        observation_id: str,
        doc: db_models.Document,
    ) -> None:
        self._observations.setdefault(project_id, {})[observation_id] = doc

    def load_snapshot(self, path: pathlib.Path) -> None:
        """Load projects and their collections from a JSON snapshot file.

        The snapshot maps project ids to project documents; each project
        document may carry ``features`` and ``observations`` mappings that
        are split out into their own collections.

        Args:
            path: Location of the snapshot file.

        Raises:
            DocumentParseError: If the file does not hold a ``projects``
                mapping.
        """
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        projects = data.get("projects") if isinstance(data, dict) else None
        if not isinstance(projects, dict):
            raise errors.DocumentParseError(
                f"Snapshot {path} has no 'projects' mapping"
            )
        for project_id, raw in projects.items():
            doc = dict(raw)
            features = doc.pop("features", None) or {}
            observations = doc.pop("observations", None) or {}
            self.add_project(project_id, doc)
            for feature_id, feature in features.items():
                self.add_feature(project_id, feature_id, feature)
            for observation_id, observation in observations.items():
                self.add_observation(project_id, observation_id, observation)
        logger.info("Loaded %d project(s) from %s", len(projects), path)

    def fetch_project(self, project_id: str) -> db_models.Project | None:
        doc = self._projects.get(project_id)
        if doc is None:
            return None
        return db_models.project_from_document(project_id, doc)

    def fetch_features_by_layer_id(
        self,
        project_id: str,
        layer_id: str | None,
    ) -> list[db_models.Feature]:
        return [
            db_models.feature_from_document(feature_id, doc)
            for feature_id, doc in self._features.get(project_id, {}).items()
            if doc.get("layerId") == layer_id
        ]

    def fetch_observations_by_layer_id(
        self,
        project_id: str,
        layer_id: str | None,
    ) -> list[db_models.Observation]:
        return [
            db_models.observation_from_document(observation_id, doc)
            for observation_id, doc in self._observations.get(
                project_id, {}
            ).items()
            if doc.get("layerId") == layer_id
        ]


class PostgresDocumentStore(DocumentStoreProtocol):
    """PostgreSQL-backed document store.

    Project documents are stored as ``json`` so their nested key order
    (form order, element order) survives the round trip; ``jsonb`` would
    re-sort keys. Feature and observation documents are ``jsonb``. Each
    collection has a ``seq`` column filled on insert, and fetches order by
    it so repeated exports of an unchanged database return rows in the
    same order. Tables are created on initialization.
    """

    CREATE_TABLES_SQL = """
    CREATE TABLE IF NOT EXISTS projects (
      id TEXT PRIMARY KEY,
      seq BIGSERIAL,
      doc JSON NOT NULL
    );
    CREATE TABLE IF NOT EXISTS features (
      project_id TEXT NOT NULL,
      id TEXT NOT NULL,
      layer_id TEXT,
      seq BIGSERIAL,
      doc JSONB NOT NULL,
      PRIMARY KEY (project_id, id)
    );
    CREATE TABLE IF NOT EXISTS observations (
      project_id TEXT NOT NULL,
      id TEXT NOT NULL,
      layer_id TEXT,
      feature_id TEXT,
      seq BIGSERIAL,
      doc JSONB NOT NULL,
      PRIMARY KEY (project_id, id)
    );
    CREATE INDEX IF NOT EXISTS features_layer_idx
      ON features (project_id, layer_id, seq);
    CREATE INDEX IF NOT EXISTS observations_layer_idx
      ON observations (project_id, layer_id, seq);
    """

    def __init__(self, settings: config.Settings) -> None:
        """Initialize the store with database settings.

        Args:
            settings: Application settings containing the database URL.
        """
        self.settings = settings
        self._ensure_schema()

    def _connection(self) -> psycopg2.extensions.connection:
        return psycopg2.connect(self.settings.database_url)

    def _ensure_schema(self) -> None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(self.CREATE_TABLES_SQL)
            conn.commit()

    def add_project(self, project_id: str, doc: db_models.Document) -> None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO projects (id, doc) VALUES (%s, %s)
                ON CONFLICT (id) DO UPDATE SET doc = EXCLUDED.doc;
                """,
                (project_id, psycopg2.extras.Json(doc)),
            )
            conn.commit()

    def add_feature(
        self,
        project_id: str,
        feature_id: str,
        doc: db_models.Document,
    ) -> None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO features (project_id, id, layer_id, doc)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (project_id, id) DO UPDATE SET
                    layer_id = EXCLUDED.layer_id,
                    doc = EXCLUDED.doc;
                """,
                (
                    project_id,
                    feature_id,
                    doc.get("layerId"),
                    psycopg2.extras.Json(doc),
                ),
            )
            conn.commit()

    def add_observation(
        self,
        project_id: str,
        observation_id: str,
        doc: db_models.Document,
    ) -> None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO observations
                    (project_id, id, layer_id, feature_id, doc)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (project_id, id) DO UPDATE SET
                    layer_id = EXCLUDED.layer_id,
                    feature_id = EXCLUDED.feature_id,
                    doc = EXCLUDED.doc;
                """,
                (
                    project_id,
                    observation_id,
                    doc.get("layerId"),
                    doc.get("featureId"),
                    psycopg2.extras.Json(doc),
                ),
            )
            conn.commit()

    def fetch_project(self, project_id: str) -> db_models.Project | None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT doc FROM projects WHERE id = %s", (project_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return db_models.project_from_document(
            project_id, cast(db_models.Document, row[0])
        )

    def fetch_features_by_layer_id(
        self,
        project_id: str,
        layer_id: str | None,
    ) -> list[db_models.Feature]:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, doc FROM features
                WHERE project_id = %s AND layer_id IS NOT DISTINCT FROM %s
                ORDER BY seq
                """,
                (project_id, layer_id),
            )
            rows = cur.fetchall()
        return [
            db_models.feature_from_document(
                str(row[0]), cast(db_models.Document, row[1])
            )
            for row in rows
        ]

    def fetch_observations_by_layer_id(
        self,
        project_id: str,
        layer_id: str | None,
    ) -> list[db_models.Observation]:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, doc FROM observations
                WHERE project_id = %s AND layer_id IS NOT DISTINCT FROM %s
                ORDER BY seq
                """,
                (project_id, layer_id),
            )
            rows = cur.fetchall()
        return [
            db_models.observation_from_document(
                str(row[0]), cast(db_models.Document, row[1])
            )
            for row in rows
        ]


@functools.lru_cache
def _memory_store(snapshot_path: pathlib.Path | None) -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    if snapshot_path is not None:
        store.load_snapshot(snapshot_path)
    return store


def get_document_store(settings: config.Settings) -> DocumentStoreProtocol:
    """Factory function to create the configured document store.

    The in-memory store is shared per snapshot path for the life of the
    process; the postgres store opens a connection per call.

    Args:
        settings: Application settings selecting the backend.

    Returns:
        PostgresDocumentStore or InMemoryDocumentStore.
    """
    if settings.store_backend == "memory":
        return _memory_store(settings.snapshot_path)
    return PostgresDocumentStore(settings)
