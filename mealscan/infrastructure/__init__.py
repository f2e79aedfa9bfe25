"""Infrastructure adapters: imaging, inference client, result cache."""
