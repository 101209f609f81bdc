"""HTTP API routes and metrics."""
