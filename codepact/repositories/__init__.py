"""Unit of work and repository-layer errors."""
