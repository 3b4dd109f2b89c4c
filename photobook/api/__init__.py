"""HTTP surface, persistence and services for the photobook pipeline."""
