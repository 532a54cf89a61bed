"""Session lifecycle core: records, naming and the lifecycle controller."""
