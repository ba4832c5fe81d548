"""API router subpackage for the export service.

Submodules:
    - exports: CSV export endpoint for a project layer.

Routers are grouped by feature domain and composed in the application's
main FastAPI instance.
"""
