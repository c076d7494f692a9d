"""Persistence adapters for warden."""
