"""
Tick data module.

Canonical tick models and the binary frame decoder and encoder for the
length-prefixed tick protocol.
"""
