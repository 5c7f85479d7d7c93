"""
Manteia — cross-domain order relay + market resolution bot.

Layers:
  relay/        — Order book hub, spoke forwarder, mailbox transport, wire codec
  polymarket/   — Oracle API clients (CLOB, Gamma), fallback feed, outcome mapping
  bot/          — Resolution bot: rate limiter, tracker, settlement, poll loop
  mcp/          — Read-only MCP server for operators
  orders.py     — Programmatic order operations for an outer API layer
"""
