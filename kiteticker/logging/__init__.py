"""
Logging configuration and utilities for the ticker client.
"""
from .config import configure_logging, get_connection_logger, get_logger, log_state_transition

__all__ = ["configure_logging", "get_logger", "get_connection_logger", "log_state_transition"]
