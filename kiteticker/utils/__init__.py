"""
Utility functions module.

Time conversion helpers shared by the decoder and encoder.
"""
