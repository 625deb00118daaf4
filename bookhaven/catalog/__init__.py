"""
Catalog package for BookHaven.

Aggregation of review ratings, the filter/sort/paginate pipeline, the
per-session catalogue service and book editing, plus the routes that
expose them under /api/catalog.
"""
