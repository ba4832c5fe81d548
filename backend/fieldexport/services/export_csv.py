"""CSV export of a layer's features and observations.

This module flattens the nested project -> layer -> form -> element schema
and the feature/observation collections of one layer into a single CSV
stream. Columns are four fixed identity/location columns followed by one
column per form element in ``index`` order; rows are one per
(feature, observation) pair, in feature fetch order and then observation
fetch order.

Observations are indexed by feature id in memory before any row is
written. That holds a whole layer's observations at once, which is
acceptable for the layer sizes this service handles.

Example:
    Export a layer from any document store:
        >>> from fieldexport.services import export_csv
        >>> job = export_csv.prepare_export(store, "p1", "l1")
        >>> body = "".join(job.stream())
        >>> body.splitlines()[0]
        '"Place ID","Place name","Latitude","Longitude","Name"'
"""

from __future__ import annotations

import asyncio
import csv
import dataclasses
import io
import logging
import math
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from starlette import concurrency

from fieldexport.core import errors

if TYPE_CHECKING:
    from collections.abc import Iterable

    from fieldexport.db import database
    from fieldexport.db import models as db_models

logger = logging.getLogger(__name__)

FIXED_HEADERS = ("Place ID", "Place name", "Latitude", "Longitude")

ObservationGroups = dict[str, list["db_models.Observation"]]


@dataclasses.dataclass(frozen=True)
class ExportSchema:
    """Resolved column layout for one layer.

    Attributes:
        headers: Header row, the fixed columns followed by element labels.
        elements: Form elements in column order.
    """

    headers: tuple[str, ...]
    elements: tuple[db_models.Element, ...]

    @property
    def width(self) -> int:
        return len(self.headers)


def _select_form(layer: db_models.Layer) -> db_models.Form | None:
    forms = list(layer.forms.values())
    if not forms:
        return None
    if len(forms) > 1:
        logger.warning(
            "Layer '%s' has %d forms; exporting the first ('%s')",
            layer.id,
            len(forms),
            forms[0].id,
        )
    return forms[0]


def resolve_schema(
    project: db_models.Project,
    layer_id: str | None,
) -> ExportSchema:
    """Derive the ordered header row for a project layer.

    A missing layer, or a layer without a form, yields a schema with only
    the fixed columns.

    Args:
        project: Project holding the layer definitions.
        layer_id: Layer to export; None is treated as a missing layer.

    Returns:
        ExportSchema with ``4 + len(elements)`` headers.
    """
    layer = project.layers.get(layer_id) if layer_id is not None else None
    form = _select_form(layer) if layer is not None else None
    if form is None:
        logger.debug(
            "No form for layer '%s' in project '%s'; exporting fixed columns",
            layer_id,
            project.id,
        )
        elements: tuple[db_models.Element, ...] = ()
    else:
        # sorted() is stable, so equal indexes keep store order.
        elements = tuple(
            sorted(form.elements.values(), key=lambda element: element.index)
        )
    headers = FIXED_HEADERS + tuple(element.display_label for element in elements)
    return ExportSchema(headers=headers, elements=elements)


def group_observations_by_feature(
    observations: Iterable[db_models.Observation],
) -> ObservationGroups:
    """Index observations by the feature they refer to.

    Args:
        observations: Observations in fetch order.

    Returns:
        Mapping from feature id to its observations, each list in fetch
        order. Observations without a feature id are left out.
    """
    groups: ObservationGroups = {}
    for observation in observations:
        if observation.feature_id is None:
            continue
        groups.setdefault(observation.feature_id, []).append(observation)
    return groups


def count_orphans(
    features: Iterable[db_models.Feature],
    groups: ObservationGroups,
) -> int:
    """Count grouped observations whose feature was not fetched."""
    feature_ids = {feature.id for feature in features}
    return sum(
        len(group)
        for feature_id, group in groups.items()
        if feature_id not in feature_ids
    )


def render_cell(value: Any) -> str:
    """Render a single value as CSV cell text.

    None becomes an empty cell. Integral floats drop their fractional part
    (``10.0`` -> ``"10"``), other numbers use the shortest decimal form
    that round-trips, non-finite floats render as ``NaN``/``Infinity``,
    and lists are joined with commas.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ",".join(render_cell(item) for item in value)
    return str(value)


def build_row(
    feature: db_models.Feature,
    observation: db_models.Observation,
    elements: Iterable[db_models.Element],
) -> list[str]:
    location = feature.location
    row = [
        feature.id,
        render_cell(feature.caption),
        render_cell(location.latitude) if location else "",
        render_cell(location.longitude) if location else "",
    ]
    row.extend(
        render_cell(observation.responses.get(element.id)) for element in elements
    )
    return row


def iter_rows(
    schema: ExportSchema,
    features: Iterable[db_models.Feature],
    groups: ObservationGroups,
) -> Iterator[list[str]]:
    """Yield one data row per (feature, observation) pair.

    Features without observations produce no rows, and groups whose
    feature is not in ``features`` are never visited.
    """
    for feature in features:
        for observation in groups.get(feature.id, ()):
            yield build_row(feature, observation, schema.elements)


def stream_csv(
    schema: ExportSchema,
    features: Iterable[db_models.Feature],
    groups: ObservationGroups,
) -> Iterator[str]:
    """Encode the header and data rows as CSV text, one chunk per row.

    Every field is quoted, fields are separated by ``,`` and each row,
    including the last, ends with ``\\n``. Only the current row is held in
    memory. If the consumer stops iterating early (for example because the
    client disconnected) the generator is closed and the abort is logged;
    nothing outside this export is affected.

    Args:
        schema: Resolved header row and element order.
        features: Features in export order.
        groups: Observations grouped by feature id.

    Yields:
        CSV text for one row at a time, header first.
    """
    buffer = io.StringIO()
    writer = csv.writer(
        buffer,
        delimiter=",",
        quotechar='"',
        quoting=csv.QUOTE_ALL,
        lineterminator="\n",
    )
    rows_written = 0
    completed = False
    try:
        writer.writerow(schema.headers)
        yield _drain(buffer)
        for row in iter_rows(schema, features, groups):
            writer.writerow(row)
            rows_written += 1
            yield _drain(buffer)
        completed = True
    finally:
        buffer.close()
        if completed:
            logger.info("CSV export finished: %d row(s)", rows_written)
        else:
            logger.warning(
                "CSV export aborted after %d row(s)", rows_written
            )


def _drain(buffer: io.StringIO) -> str:
    chunk = buffer.getvalue()
    buffer.seek(0)
    buffer.truncate(0)
    return chunk


@dataclasses.dataclass(frozen=True)
class ExportJob:
    """Everything needed to stream one layer export.

    Built after all reads have finished, so a job never touches the store
    while it is being streamed.
    """

    project_id: str
    layer_id: str | None
    schema: ExportSchema
    features: tuple[db_models.Feature, ...]
    groups: ObservationGroups

    @property
    def filename_stem(self) -> str:
        """Unsanitized name for the download; callers must escape it."""
        return self.layer_id or self.project_id

    def stream(self) -> Iterator[str]:
        return stream_csv(self.schema, self.features, self.groups)


def _fetch_project(
    store: database.DocumentStoreProtocol,
    project_id: str,
) -> db_models.Project:
    project = store.fetch_project(project_id)
    if project is None:
        raise errors.ProjectNotFoundError(project_id)
    return project


def build_export_job(
    project: db_models.Project,
    layer_id: str | None,
    features: Iterable[db_models.Feature],
    observations: Iterable[db_models.Observation],
) -> ExportJob:
    """Resolve the schema and group observations for a fetched layer."""
    schema = resolve_schema(project, layer_id)
    features = tuple(features)
    groups = group_observations_by_feature(observations)
    orphans = count_orphans(features, groups)
    if orphans:
        logger.debug(
            "Dropping %d observation(s) with no matching feature in layer '%s'",
            orphans,
            layer_id,
        )
    return ExportJob(
        project_id=project.id,
        layer_id=layer_id,
        schema=schema,
        features=features,
        groups=groups,
    )


def prepare_export(
    store: database.DocumentStoreProtocol,
    project_id: str,
    layer_id: str | None,
) -> ExportJob:
    """Read a layer and prepare its export, issuing reads one after another.

    Args:
        store: Document store to read from.
        project_id: Project to export.
        layer_id: Layer to export.

    Returns:
        ExportJob ready to stream.

    Raises:
        ProjectNotFoundError: If the project does not exist.
    """
    project = _fetch_project(store, project_id)
    logger.info("Exporting project '%s', layer '%s'", project_id, layer_id)
    features = store.fetch_features_by_layer_id(project.id, layer_id)
    observations = store.fetch_observations_by_layer_id(project.id, layer_id)
    return build_export_job(project, layer_id, features, observations)


async def prepare_export_async(
    store: database.DocumentStoreProtocol,
    project_id: str,
    layer_id: str | None,
) -> ExportJob:
    """Async variant of prepare_export for request handlers.

    Store calls run in the thread pool. The feature and observation reads
    are independent and are issued concurrently; the result does not
    depend on which finishes first.

    Raises:
        ProjectNotFoundError: If the project does not exist.
    """
    project = await concurrency.run_in_threadpool(
        _fetch_project, store, project_id
    )
    logger.info("Exporting project '%s', layer '%s'", project_id, layer_id)
    features, observations = await asyncio.gather(
        concurrency.run_in_threadpool(
            store.fetch_features_by_layer_id, project.id, layer_id
        ),
        concurrency.run_in_threadpool(
            store.fetch_observations_by_layer_id, project.id, layer_id
        ),
    )
    return build_export_job(project, layer_id, features, observations)
