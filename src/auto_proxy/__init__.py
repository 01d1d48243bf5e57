"""Provision and tear down single-host proxies on cloud compute."""

__version__ = "0.3.0"
