"""
Client Card Control - Hand gesture client for the Higher/Lower card game.

This module runs on a client machine (laptop), turns per-frame hand pose
observations into stable, rate-limited game commands, and exchanges them
with the card game backend over a publish/subscribe channel.

Game state is never computed locally.
"""

__version__ = "1.0.0"
