"""Domain layer - schema model, rows, error taxonomy and domain services."""
