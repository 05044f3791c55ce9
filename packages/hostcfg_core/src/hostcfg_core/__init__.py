"""Shared types for the hostcfg packages."""
