"""FastAPI application for Pollux."""
