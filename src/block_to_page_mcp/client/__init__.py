"""Logseq HTTP API client."""

from .api_client import LogseqClient
from .api_client_core import LogseqClientCore

__all__ = ["LogseqClient", "LogseqClientCore"]
