"""Prometheus exporter for Linux DVB frontends."""

__version__ = "0.1.0"
