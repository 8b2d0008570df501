"""Command-line interface for planning and rendering compositions."""
