"""Service layer: job engine, partnerships, attribution and App Store checks."""
