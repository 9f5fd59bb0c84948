"""
Entry point for running solr_repository as a module.

This allows the MCP server to be started with:
    python -m solr_repository --repository module:Class
"""

from .main import main

if __name__ == "__main__":
    main()
