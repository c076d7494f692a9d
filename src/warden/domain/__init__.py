"""Domain records for warden."""
