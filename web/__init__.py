"""
Web application package for the chess puzzle rush.

Provides a FastAPI-based JSON API that a browser UI uses to run timed
puzzle sessions against the chunked puzzle store.
"""
