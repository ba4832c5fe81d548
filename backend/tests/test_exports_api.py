"""API endpoint tests for the CSV export endpoint.

This module exercises /api/exports/csv through the FastAPI test client,
covering:
    - The not-found contract for unknown projects (plain-text 404),
    - Header-only exports for unknown layers,
    - The row/column contract of a populated layer,
    - Byte-identical output across repeated exports.

The document store is always injected through dependency overrides with
an in-memory implementation, so no database is needed.

See Also:
    - backend/fieldexport/api/exports.py for the endpoint,
    - backend/fieldexport/services/export_csv.py for the export engine.
"""

from __future__ import annotations

import csv
import io

from fastapi import testclient

from fieldexport import main
from fieldexport.api import exports as api_exports
from fieldexport.db import database


def _client(store: database.DocumentStoreProtocol) -> testclient.TestClient:
    app = main.create_app()
    app.dependency_overrides[api_exports._get_store] = lambda: store
    return testclient.TestClient(app)


def test_export_unknown_project_returns_404() -> None:
    """Test that an unknown project is a plain-text 404, not a CSV."""
    client = _client(database.InMemoryDocumentStore())
    response = client.get(
        "/api/exports/csv", params={"project": "missing", "layer": "l1"}
    )
    assert response.status_code == 404
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "Project not found"


def test_export_requires_project_parameter() -> None:
    """Test that the project query parameter is mandatory."""
    client = _client(database.InMemoryDocumentStore())
    response = client.get("/api/exports/csv", params={"layer": "l1"})
    assert response.status_code == 422


def test_export_unknown_layer_returns_header_only(
    tree_survey_store: database.InMemoryDocumentStore,
) -> None:
    """Test that an unknown layer exports just the fixed header row."""
    client = _client(tree_survey_store)
    response = client.get(
        "/api/exports/csv", params={"project": "p1", "layer": "nope"}
    )
    assert response.status_code == 200
    assert response.text == '"Place ID","Place name","Latitude","Longitude"\n'


def test_export_without_layer_parameter(
    tree_survey_store: database.InMemoryDocumentStore,
) -> None:
    """Test that omitting the layer is tolerated."""
    client = _client(tree_survey_store)
    response = client.get("/api/exports/csv", params={"project": "p1"})
    assert response.status_code == 200
    assert response.text == '"Place ID","Place name","Latitude","Longitude"\n'
    assert 'filename="p1.csv"' in response.headers["content-disposition"]


def test_export_tree_survey_layer(
    tree_survey_store: database.InMemoryDocumentStore,
) -> None:
    """Test the exported CSV for a layer with one observed feature."""
    client = _client(tree_survey_store)
    response = client.get(
        "/api/exports/csv", params={"project": "p1", "layer": "l1"}
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert (
        response.headers["content-disposition"]
        == "attachment; filename=\"l1.csv\"; filename*=UTF-8''l1.csv"
    )
    assert response.text == (
        '"Place ID","Place name","Latitude","Longitude","Name"\n'
        '"f1","Tree A","10","20","Oak"\n'
    )


def test_export_rows_match_header_width(
    tree_survey_store: database.InMemoryDocumentStore,
) -> None:
    """Test that every parsed row has as many fields as the header."""
    tree_survey_store.add_project(
        "p1",
        {
            "layers": {
                "l1": {
                    "forms": {
                        "form1": {
                            "elements": {
                                "e2": {"index": 1, "label": {"en": "Height"}},
                                "e1": {"index": 0, "label": {"en": "Name"}},
                                "e3": {"index": 2, "label": {}},
                            },
                        },
                    },
                },
            },
        },
    )
    tree_survey_store.add_observation(
        "p1",
        "o2",
        {"featureId": "f2", "layerId": "l1", "responses": {"e2": 12.5}},
    )
    client = _client(tree_survey_store)
    response = client.get(
        "/api/exports/csv", params={"project": "p1", "layer": "l1"}
    )
    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0] == [
        "Place ID",
        "Place name",
        "Latitude",
        "Longitude",
        "Name",
        "Height",
        "Unnamed field",
    ]
    assert rows[1:] == [
        ["f1", "Tree A", "10", "20", "Oak", "", ""],
        ["f2", "Tree B", "", "", "", "12.5", ""],
    ]
    assert {len(row) for row in rows} == {7}


def test_repeated_exports_are_identical(
    tree_survey_store: database.InMemoryDocumentStore,
) -> None:
    """Test that an unchanged store exports byte-identical files."""
    client = _client(tree_survey_store)
    params = {"project": "p1", "layer": "l1"}
    first = client.get("/api/exports/csv", params=params).content
    second = client.get("/api/exports/csv", params=params).content
    assert first == second


def test_export_non_ascii_layer_id(
    tree_survey_store: database.InMemoryDocumentStore,
) -> None:
    """Test that a non-ASCII layer id still yields a header-only CSV."""
    client = _client(tree_survey_store)
    response = client.get(
        "/api/exports/csv", params={"project": "p1", "layer": "árbol-树"}
    )
    assert response.status_code == 200
    assert response.text == '"Place ID","Place name","Latitude","Longitude"\n'
    assert response.headers["content-disposition"] == (
        "attachment; filename=\"rbol-.csv\"; "
        "filename*=UTF-8''%C3%A1rbol-%E6%A0%91.csv"
    )


def test_export_layer_id_with_quotes_keeps_single_filename(
    tree_survey_store: database.InMemoryDocumentStore,
) -> None:
    """Test that quotes in the layer id cannot add header parameters."""
    client = _client(tree_survey_store)
    response = client.get(
        "/api/exports/csv",
        params={"project": "p1", "layer": 'a"; filename="evil.exe'},
    )
    assert response.status_code == 200
    disposition = response.headers["content-disposition"]
    assert disposition == (
        "attachment; filename=\"a_filename_evil.exe.csv\"; "
        "filename*=UTF-8''a%22%3B%20filename%3D%22evil.exe.csv"
    )
    assert disposition.count("filename=") == 1


def test_export_unsluggable_layer_id_uses_fallback_name(
    tree_survey_store: database.InMemoryDocumentStore,
) -> None:
    """Test the fallback file name when nothing ASCII-safe remains."""
    client = _client(tree_survey_store)
    response = client.get(
        "/api/exports/csv", params={"project": "p1", "layer": "树"}
    )
    assert response.status_code == 200
    assert 'filename="export.csv"' in response.headers["content-disposition"]
