"""Exceptions raised by the export service.

Only conditions that abort a request are modelled as exceptions. A layer
without a form, or observations pointing at an unknown feature, are not
errors: the export degrades to an empty schema or drops the rows.
"""


class FieldExportError(Exception):
    """Base class for all export service errors."""


class ProjectNotFoundError(FieldExportError):
    """Raised when the requested project does not exist in the store."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project not found: {project_id!r}")
        self.project_id = project_id


class DocumentParseError(FieldExportError):
    """Raised when a raw store document has an unusable shape."""
