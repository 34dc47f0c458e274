"""Task domain model and the in-memory task store."""
