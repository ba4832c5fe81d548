"""Pytest configuration exposing the backend package and shared fixtures."""

from __future__ import annotations

import pathlib
import sys

import pytest

BACKEND_ROOT = pathlib.Path(__file__).resolve().parent

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from fieldexport.db import database  # noqa: E402


@pytest.fixture
def tree_survey_store() -> database.InMemoryDocumentStore:
    """Store with project p1, layer l1 and one observed feature.

    Feature f1 ("Tree A" at 10.0/20.0) has one observation answering
    element e1 ("Name") with "Oak"; feature f2 has no observations.
    """
    store = database.InMemoryDocumentStore()
    store.add_project(
        "p1",
        {
            "layers": {
                "l1": {
                    "forms": {
                        "form1": {
                            "elements": {
                                "e1": {"index": 0, "label": {"en": "Name"}},
                            },
                        },
                    },
                },
            },
        },
    )
    store.add_feature(
        "p1",
        "f1",
        {
            "layerId": "l1",
            "caption": "Tree A",
            "location": {"_latitude": 10.0, "_longitude": 20.0},
        },
    )
    store.add_feature("p1", "f2", {"layerId": "l1", "caption": "Tree B"})
    store.add_observation(
        "p1",
        "o1",
        {"featureId": "f1", "layerId": "l1", "responses": {"e1": "Oak"}},
    )
    return store
