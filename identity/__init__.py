"""
Identity gateway: authentication and session core.

Password login, one-time verification codes and JWT access / rotating
refresh tokens, shared by the HTTP and MCP front ends.
"""

__version__ = "1.0.0"
