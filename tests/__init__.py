"""
Test Package for the Soroswap MCP server

Test Structure:
- unit/: pure functions and in-memory structures (cache, validation, config, tokens, logging)
- integration/: services, dispatcher, MCP server binding and HTTP clients, with the
  Horizon and Soroswap clients mocked or served by httpx.MockTransport
- conftest.py: the fake clock shared by both
"""
