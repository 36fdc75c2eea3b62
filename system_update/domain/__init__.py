"""Domain objects for partition layouts and backups."""
