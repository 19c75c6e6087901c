"""
Shared Utilities

- config: pydantic-settings configuration
- logging: text/JSON logging setup
- schemas: pydantic models shared by the cache and the extractor
- errors: fatal error taxonomy of the extraction call
- cache_store: SQLite-backed persistent cache keyed by calendar date
"""
