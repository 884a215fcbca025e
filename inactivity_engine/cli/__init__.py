"""Command line interface for the Inactivity Engine."""
