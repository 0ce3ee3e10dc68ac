"""HTTP API (FastAPI). `flowerpots.api.server.create_app` builds the app."""
