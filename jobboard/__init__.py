"""Job board object storage: user-scoped uploads and read-time access control."""
