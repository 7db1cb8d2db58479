"""
fsbridge - virtual filesystem binding over a native extension's message channel.

Gates:
    - ReplyChannel: JSON request/reply transport and correlation
    - FileSystemGate: manager, file, storage and stream entities
    - Config: settings from environment, .env and data/fsbridge.json
"""

__version__ = "0.1.0"
