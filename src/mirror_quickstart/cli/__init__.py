"""Command-line interface for mirror-quickstart."""
