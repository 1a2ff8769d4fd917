"""Session lifecycle, message relay, roster sync and broadcast logic."""
