"""Business logic layer for files app.

This package contains all business logic of the file metadata engine:
- Role policy deciding who may do what
- Two-phase upload: reservation and confirmation
- Authorized listing, download, rename and soft delete
- Dispatch of the logical request surface to the operations above

All business logic should be implemented here, separate from
models (data layer) and infrastructure (external systems).
Collaborators are injected into constructors; ``wiring`` builds the
production graph.
"""
