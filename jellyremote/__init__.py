"""Terminal remote control for Jellyfin playback sessions."""
