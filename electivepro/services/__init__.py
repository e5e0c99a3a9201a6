"""Service layer: validation and orchestration between routes and repositories."""
