"""Real-time fan-out — in-memory hub + WebSocket/SSE gateways.

Events flow through two hops:
1. Dispatcher → BroadcastHub.send (after the durable append succeeds)
2. Hub subscription → gateway connection → viewer

Each gateway connection owns one hub subscription for its lifetime.
"""
