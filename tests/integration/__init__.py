"""
Integration Tests for the Soroswap MCP server

These tests drive the services and the dispatcher the way an MCP client would,
with the ledger and quote clients replaced by mocks.

Test files:
- conftest.py: settings, mocked clients, services and dispatcher fixtures
- test_swap.py: swap estimation, execution, pre-checks and per-account locking
- test_wallet.py: wallet sessions, expiry and balance helpers
- test_price.py: pair and single-token prices, caching, market summary
- test_dispatcher.py: tool and resource routing, envelopes and payloads
- test_server.py: the low-level MCP server binding and component wiring
- test_clients.py: Horizon and Soroswap HTTP wrappers against httpx.MockTransport
"""
