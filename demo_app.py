"""Demo server running the webhook broker.

Configuration is read from BROKER_* environment variables, for example:

    BROKER_UPSTREAM_URL=https://engine.example.com/webhook/analysis
    BROKER_CACHE_BACKEND=redis
    BROKER_REDIS_URL=redis://localhost:6379/0

Run with: python demo_app.py
"""

import uvicorn

from webhook_broker.adapters.asgi import create_app
from webhook_broker.config import BrokerConfig
from webhook_broker.observability.logging import configure_logging

config = BrokerConfig.from_env()
configure_logging(level=config.log_level, json_output=config.log_json)

app = create_app(config)


if __name__ == "__main__":
    print("=" * 60)
    print("Webhook Broker Demo Server")
    print("=" * 60)
    print(f"\nUpstream: {config.upstream_url}")
    print(f"Cache backend: {config.cache_backend}")
    print("\nStarting server at http://localhost:8000")
    print("\nTry these commands:")
    print("  curl http://localhost:8000/api/health")
    print("  curl -X POST http://localhost:8000/api/work \\")
    print('       -H "Content-Type: application/json" \\')
    print('       -d \'{"lesseeName": "acme", "itemDescription": "Volvo A30G"}\'')
    print("\nPress Ctrl+C to stop")
    print("=" * 60)
    print()

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=config.log_level.lower())
