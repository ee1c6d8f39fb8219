"""
setupkit - setup wizard backend.

Walks an operator through configuring a self-hosted deployment and
renders the environment file, compose file and reverse proxy
configuration for it.
"""

__version__ = "1.0.0"
