"""Tabular export API endpoints.

This module provides the CSV export endpoint. A request names a project
and a layer; the response streams one CSV row per (feature, observation)
pair of that layer, with one column per form element.

Example:
    Download a layer as CSV:
        >>> response = client.get(
        ...     "/api/exports/csv",
        ...     params={"project": "p1", "layer": "l1"},
        ... )
        >>> response.headers["content-type"]
        'text/csv; charset=utf-8'
        >>> print(response.text)
        "Place ID","Place name","Latitude","Longitude","Name"
        "f1","Tree A","10","20","Oak"
"""

import re
import urllib.parse

import fastapi
from fastapi import responses

from fieldexport.core import config
from fieldexport.db import database
from fieldexport.services import export_csv

router = fastapi.APIRouter(prefix="/api/exports", tags=["exports"])

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
FALLBACK_FILENAME_STEM = "export"


def _content_disposition(stem: str) -> str:
    """Build an attachment header that is safe for any identifier.

    The plain ``filename`` is an ASCII slug of ``stem`` so the header stays
    latin-1 encodable and cannot be split by quotes; ``filename*`` carries
    the original name percent-encoded as UTF-8 (RFC 5987).

    Args:
        stem: Layer or project identifier used as the file name stem.

    Returns:
        Value for the Content-Disposition header.
    """
    slug = _UNSAFE_FILENAME_CHARS.sub("_", stem).strip("._")
    ascii_name = f"{slug or FALLBACK_FILENAME_STEM}.csv"
    encoded_name = urllib.parse.quote(f"{stem}.csv", safe="")
    return (
        f'attachment; filename="{ascii_name}"; '
        f"filename*=UTF-8''{encoded_name}"
    )


def _get_store(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> database.DocumentStoreProtocol:
    """Resolve the document store dependency.

    Args:
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        DocumentStoreProtocol implementation selected by settings.
    """
    return database.get_document_store(settings)


@router.get("/csv")
async def export_layer_csv(
    project: str,
    layer: str | None = None,
    store: database.DocumentStoreProtocol = fastapi.Depends(_get_store),  # noqa: B008
) -> responses.StreamingResponse:
    """Stream a layer's features and observations as a CSV file.

    All reads happen before the response starts, so a missing project is
    reported as a 404 and never as a truncated CSV. A missing layer is not
    an error: the response is a header-only CSV with the fixed columns.

    Args:
        project: Project identifier.
        layer: Layer identifier.
        store: Document store (injected via FastAPI Depends).

    Returns:
        Streaming ``text/csv`` response served as an attachment.

    Raises:
        ProjectNotFoundError: If the project does not exist; turned into a
            plain-text 404 by the application's exception handler.
    """
    job = await export_csv.prepare_export_async(store, project, layer)
    return responses.StreamingResponse(
        job.stream(),
        media_type="text/csv",
        headers={
            "Content-Disposition": _content_disposition(job.filename_stem),
        },
    )
