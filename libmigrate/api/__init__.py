"""HTTP API for the migration engine."""
