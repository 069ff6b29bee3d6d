"""
Asynchronous response broker for webhook-driven workflow engines.

This package sits between a client that expects a single request/response
cycle and an upstream workflow engine that may answer immediately, start work
in the background, or fail. It caches results, tracks asynchronous work under
tracking handles, and reconciles results delivered out-of-band.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
