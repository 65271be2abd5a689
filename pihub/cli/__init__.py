"""pihub command-line interface."""
