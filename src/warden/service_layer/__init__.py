"""Service layer: credential checks, rate limits and verification flows."""
