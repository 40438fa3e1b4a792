"""Integration tests for the recording and dispatch pipeline.

These tests drive the session controller end to end against a local
upload server:
- Record -> Finalize -> Archive -> Upload
- Failure paths keep the session on disk
"""
