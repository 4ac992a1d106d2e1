"""Initialization file for the core package."""
