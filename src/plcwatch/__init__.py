"""plcwatch - state layer for a PLC connection-monitoring dashboard."""

__version__ = "0.1.0"
