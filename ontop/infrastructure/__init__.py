"""Infrastructure layer for Ontop-Health: configuration and logging."""
