"""
Soroswap MCP Package

This package exposes the Soroswap decentralized exchange on the Stellar network as an
MCP (Model Context Protocol) service. Agents can price token pairs, estimate and execute
swaps, and inspect wallet balances and history through a small fixed set of tools and
read-only resources.

Swaps are validated against configured bounds, quoted by the Soroswap API, pre-checked
against the account's balances and trustlines on Horizon, and then submitted to the
ledger as a path payment (or simulated when the server runs in simulation mode).

Main components:
- server.py: MCP server wiring and process lifecycle
- dispatcher.py: tool/resource dispatch with argument validation and response envelopes
- swaps.py, prices.py, wallets.py: the swap, price and wallet services
- cache.py: TTL price cache with insertion-order eviction
- stellar.py, soroswap.py: Horizon and Soroswap API clients
"""

__version__ = "1.0.0"
