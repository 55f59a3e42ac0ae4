"""Shared records and error types used across whitelister."""
