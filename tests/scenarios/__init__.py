"""End-to-end scenario tests for the webhook broker.

Each scenario drives the FastAPI application against a scripted upstream engine
and checks one aspect of the broker: synchronous results and caching,
asynchronous starts with polling, upstream errors, and the callback and
operational endpoints.
"""
