"""Scripts CLI do carpool-backup."""
