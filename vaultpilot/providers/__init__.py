"""External API clients (aggregator, JSON-RPC)."""
