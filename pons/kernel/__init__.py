"""Shared primitives: typed errors, time helpers, logging setup."""
