"""Foundation layer: core data model, errors and configuration."""
