"""
Arangod Module - Black Box Interface

Purpose: Talk to the database cluster's own administrative API
Interface: ArangodClient.get_number_of_servers(), set_number_of_servers(),
           ArangodClient.for_deployment(), NumberOfServers
Hidden: HTTP transport, authentication, JSON field names

Every call is bounded by the arangod deadline and fails as ArangodError.
"""

from .client import ArangodClient, ArangodError, NumberOfServers

__all__ = ["ArangodClient", "ArangodError", "NumberOfServers"]
