"""Field-service dashboard backend: integration client, tool endpoints and context aggregation."""
