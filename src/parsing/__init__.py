"""
Client for the external report-parsing backend.
"""

from src.parsing.client import ParsingClient, ParsingConfig, get_client, set_client

__all__ = ["ParsingClient", "ParsingConfig", "get_client", "set_client"]
