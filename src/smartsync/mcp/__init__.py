"""MCP server exposing the sync orchestrator over stdio."""
