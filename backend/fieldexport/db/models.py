"""Data models for projects, forms and collected field data.

This module defines the read-only records the export engine works with.
The document store keeps projects as nested keyed mappings
(project -> layers -> forms -> elements) and features/observations as
flat documents; the ``*_from_document`` helpers turn those raw documents
into explicit dataclasses so that nothing downstream depends on raw
mapping shapes.

Example:
    Parsing a raw project document:
        >>> from fieldexport.db import models
        >>> project = models.project_from_document(
        ...     "p1",
        ...     {
        ...         "layers": {
        ...             "l1": {
        ...                 "forms": {
        ...                     "f1": {
        ...                         "elements": {
        ...                             "e1": {"index": 0, "label": {"en": "Name"}},
        ...                         },
        ...                     },
        ...                 },
        ...             },
        ...         },
        ...     },
        ... )
        >>> project.layers["l1"].forms["f1"].elements["e1"].display_label
        'Name'
"""

from __future__ import annotations

import dataclasses
from typing import Any

from fieldexport.core import errors

UNNAMED_FIELD_LABEL = "Unnamed field"

Document = dict[str, Any]


@dataclasses.dataclass(frozen=True)
class Element:
    """A single form field definition.

    Attributes:
        id: Element identifier, also the key used in observation responses.
        index: Display and column order within the form.
        label: Mapping from locale code to display string.
    """

    id: str
    index: int
    label: dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def display_label(self) -> str:
        """First label value, or a placeholder if it is missing or empty."""
        first = next(iter(self.label.values()), None)
        if not first:
            return UNNAMED_FIELD_LABEL
        return str(first)


@dataclasses.dataclass(frozen=True)
class Form:
    id: str
    elements: dict[str, Element] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class Layer:
    id: str
    forms: dict[str, Form] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class Project:
    id: str
    layers: dict[str, Layer] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclasses.dataclass(frozen=True)
class Feature:
    """A geotagged entity within a layer.

    Attributes:
        id: Feature identifier.
        layer_id: Owning layer.
        caption: Optional display name.
        location: Optional point location.
    """

    id: str
    layer_id: str | None
    caption: str | None = None
    location: Location | None = None


@dataclasses.dataclass(frozen=True)
class Observation:
    """A set of answers recorded against a feature.

    Attributes:
        id: Observation identifier.
        feature_id: Feature this observation refers to. Not validated; it
            may point at a feature that does not exist.
        layer_id: Owning layer.
        responses: Mapping from element id to answer value.
    """

    id: str
    feature_id: str | None
    layer_id: str | None
    responses: dict[str, Any] = dataclasses.field(default_factory=dict)


def _mapping(value: object, what: str) -> Document:
    """Return ``value`` as a mapping, treating None as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise errors.DocumentParseError(
            f"Expected a mapping for {what}, got {type(value).__name__}"
        )
    return value


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def element_from_document(element_id: str, doc: Document) -> Element:
    raw_index = doc.get("index", 0)
    try:
        index = int(raw_index)
    except (TypeError, ValueError) as exc:
        raise errors.DocumentParseError(
            f"Element {element_id!r} has a non-integer index: {raw_index!r}"
        ) from exc
    label = _mapping(doc.get("label"), f"label of element {element_id!r}")
    return Element(
        id=element_id,
        index=index,
        label={str(k): v for k, v in label.items()},
    )


def form_from_document(form_id: str, doc: Document) -> Form:
    elements = _mapping(doc.get("elements"), f"elements of form {form_id!r}")
    return Form(
        id=form_id,
        elements={
            element_id: element_from_document(
                element_id, _mapping(raw, f"element {element_id!r}")
            )
            for element_id, raw in elements.items()
        },
    )


def layer_from_document(layer_id: str, doc: Document) -> Layer:
    forms = _mapping(doc.get("forms"), f"forms of layer {layer_id!r}")
    return Layer(
        id=layer_id,
        forms={
            form_id: form_from_document(form_id, _mapping(raw, f"form {form_id!r}"))
            for form_id, raw in forms.items()
        },
    )


def project_from_document(project_id: str, doc: Document) -> Project:
    """Build a Project from its raw nested document.

    Missing ``layers``/``forms``/``elements`` keys produce empty mappings.
    The store's key order is preserved at every level.

    Args:
        project_id: Document id of the project.
        doc: Raw project document.

    Returns:
        Parsed Project.

    Raises:
        DocumentParseError: If a nested value that must be a mapping is not.
    """
    layers = _mapping(doc.get("layers"), f"layers of project {project_id!r}")
    return Project(
        id=project_id,
        layers={
            layer_id: layer_from_document(
                layer_id, _mapping(raw, f"layer {layer_id!r}")
            )
            for layer_id, raw in layers.items()
        },
    )


def location_from_document(value: object) -> Location | None:
    """Parse a location, accepting both plain and GeoPoint-style keys."""
    if value is None:
        return None
    doc = _mapping(value, "location")
    latitude = doc.get("latitude", doc.get("_latitude"))
    longitude = doc.get("longitude", doc.get("_longitude"))
    if latitude is None or longitude is None:
        return None
    try:
        return Location(latitude=float(latitude), longitude=float(longitude))
    except (TypeError, ValueError) as exc:
        raise errors.DocumentParseError(
            f"Location has non-numeric coordinates: {latitude!r}, {longitude!r}"
        ) from exc


def feature_from_document(feature_id: str, doc: Document) -> Feature:
    return Feature(
        id=feature_id,
        layer_id=_optional_str(doc.get("layerId")),
        caption=_optional_str(doc.get("caption")),
        location=location_from_document(doc.get("location")),
    )


def observation_from_document(observation_id: str, doc: Document) -> Observation:
    return Observation(
        id=observation_id,
        feature_id=_optional_str(doc.get("featureId")),
        layer_id=_optional_str(doc.get("layerId")),
        responses=dict(
            _mapping(doc.get("responses"), f"responses of {observation_id!r}")
        ),
    )
