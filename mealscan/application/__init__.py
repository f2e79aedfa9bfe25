"""Application layer: use cases orchestrating the analysis pipeline."""
