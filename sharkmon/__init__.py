"""
sharkmon: Shark 100S power meter gateway.

Polls an Electro Industries Shark 100S over Modbus TCP, keeps a rolling
average of watts, volts and frequency, and serves it as a web dashboard, a
JSON endpoint, or a JSON-lines stream.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

__version__ = "0.3.1"
