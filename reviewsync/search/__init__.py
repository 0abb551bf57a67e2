"""
Restaurant search for the map and search screens.

Responsibilities:
- Define the search provider interface (text search, nearby, in bounds).
- Ship a catalog provider over a bundled CSV, ranked by distance.
- Pick the provider from an explicit ``SearchConfig``.
"""
