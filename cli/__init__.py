"""CLI package for the DashStream API client

Provides the ``dashstream`` command (``cli.main:main``) for managing stored
credentials and issuing authenticated requests from a terminal.
"""
