"""Cross-cutting infrastructure: database engine, sessions and schema probe."""
