"""
Callback API - HTTP surface of the Agent Callback Relay

Exposes:
- The inbound status-change endpoint the coding-agent API calls back
- Job registration and lookup
- Status push endpoint that triggers completion notifications
- Health check with delivery counters
"""
