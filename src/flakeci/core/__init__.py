"""Ambient runtime helpers shared by the CI engine and the CLI."""
