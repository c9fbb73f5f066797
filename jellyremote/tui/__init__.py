"""Interactive terminal interface for the Jellyfin remote."""
