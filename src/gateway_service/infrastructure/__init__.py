"""Infrastructure layer - database, Redis, repositories and metrics."""
