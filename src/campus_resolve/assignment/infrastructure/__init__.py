"""Assignment infrastructure layer."""
