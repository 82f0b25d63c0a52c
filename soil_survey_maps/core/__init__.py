"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants (CRS codes, column names, file suffixes)
- exceptions: Custom exception hierarchy
"""
