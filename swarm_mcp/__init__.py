"""
Swarm MCP server package.

This package exposes LLM-friendly tools backed by the HTTP API of a Swarm Bee
node or gateway. See DESIGN.md for full details.
"""

__version__ = "0.1.0"

__all__ = ["config"]
