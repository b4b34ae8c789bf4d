"""MCP server exposing the Vectorize retrieval, extraction and deep research APIs."""

__version__ = "0.2.0"
