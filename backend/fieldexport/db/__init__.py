"""Document store interface and record models.

Exposes the DocumentStoreProtocol used by the export service along with the
in-memory (tests, local development) and PostgreSQL implementations, and
the dataclasses raw documents are parsed into.

Example:
    Use in a service or FastAPI dependency:
        >>> from fieldexport.db import database
        >>> store = database.get_document_store(settings)
        >>> project = store.fetch_project("p1")
"""
