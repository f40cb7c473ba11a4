"""Core engine primitives (event bus and typed domain events).

Kept free of FastAPI concerns so it can be reused by API routes, CLI, and tests.
"""
