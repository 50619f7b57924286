"""
Configuration module.

Default parameters, YAML loading with layered overrides, and validation of
connection, segment divisor and packet layout settings.
"""
