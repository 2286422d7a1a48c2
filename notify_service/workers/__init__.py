"""Taskiq task definitions.

Each task builds its own engine components, runs one job and releases
them, so the same code serves the API process and a standalone worker.
"""
