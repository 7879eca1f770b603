"""Domain layer: entities, value objects, services and the error taxonomy."""
