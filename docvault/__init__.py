"""Role-based document access viewer."""
