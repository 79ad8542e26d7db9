"""Command line programs for the dataset archive."""
