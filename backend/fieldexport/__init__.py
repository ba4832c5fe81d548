"""Field data export service.

This package contains a small FastAPI backend that turns the field data a
survey team collected for one layer of a project into a CSV download. The
project schema (layers, forms, form elements) and the layer's features and
observations are read from a document store, flattened into one row per
(feature, observation) pair, and streamed to the client.

- Reads projects, features and observations through a store protocol with
  PostgreSQL (JSONB) and in-memory implementations
- Resolves a stable column order from the layer's form elements
- Streams the CSV row by row without building the full file in memory
"""
