"""Infrastructure layer for files app.

This package contains integrations with external systems:
- S3-compatible object store issuing presigned upload/download URLs
- Metadata index and reservation store backed by the Django ORM
- In-memory index and reservation store for tests and local wiring
- Validation of client-supplied metadata

Keep infrastructure concerns separate from business logic.
"""
