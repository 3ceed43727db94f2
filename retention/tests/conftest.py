"""Shared pytest configuration."""
import os

# Keep the app's startup schema bootstrap off the repo-root telemetry.db
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
