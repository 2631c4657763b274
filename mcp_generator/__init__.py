"""
Universal MCP generator.

This package contains modular pieces for driving a browser session,
detecting the authentication state of a page, running image-based
analysis, mapping interactive elements into categories, and synthesizing
schema-described automation tools from the result.
"""
