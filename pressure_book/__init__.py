"""
pressure_book - Live order book with pressure zone analytics for Binance spot.

Architecture:
- datafeed/: level parsing, merge engine, history, live client, simulator
- engine/: pressure zone analytics (clustering, volume spikes)
- orchestrator: live -> simulated fallback state machine
"""

__version__ = "0.1.0"
