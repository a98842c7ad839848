"""Payment order orchestration for the mobile booking app."""
