"""Entrypoints: Flask app, CLI and background maintenance."""
