"""
BookHaven: a community book catalogue.

The package computes rating aggregates from review rows, turns the
aggregated catalogue plus a viewer's search, genre and sort selection
into a stable page of results, and runs the review editor that creates,
edits and deletes reviews against the data platform. Persistence,
sign-in and row ownership rules belong to the platform; ``storage``
holds the interface to it and an in-memory stand-in.
"""

__version__ = "1.0.0"
