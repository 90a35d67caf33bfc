"""Shared helpers: errors, logging, HTTP and file I/O."""
