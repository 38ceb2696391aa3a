"""
Hub API Layer.

This package handles all metadata communication with the model hub.
"""

from .client import HubClient, content_url

__all__ = ["HubClient", "content_url"]
