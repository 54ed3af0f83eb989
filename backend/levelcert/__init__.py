"""Application package for the level-certification learning backend.

This package exposes the service, repository and model modules used by
the FastAPI application: employee-id login, exam results with wrong-answer
detail, a personal wrong-question bank, notes and aggregate statistics.
Individual modules contain the concrete implementations and documentation.
"""
