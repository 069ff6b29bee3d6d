"""Framework adapters for the webhook broker.

- asgi.py: FastAPI application exposing the broker routes

The core broker is framework-agnostic; adapters translate HTTP requests into
broker calls and BrokerResponse objects back into framework responses.
"""

from webhook_broker.adapters.asgi import create_app

__all__ = ["create_app"]
