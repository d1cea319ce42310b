"""
Shared utilities: errors, logging and shutdown handling.
"""
