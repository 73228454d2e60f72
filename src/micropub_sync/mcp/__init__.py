"""MCP stdio server exposing reconciliation and the pipelines as tools."""
