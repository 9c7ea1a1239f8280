"""AWS Lambda entry point.

Mangum translates API Gateway HTTP API (v2) events into ASGI,
letting the broker's FastAPI app run unchanged on Lambda. Use the
dynamodb storage backend there; the JSON file does not survive
between invocations.
"""

from mangum import Mangum

from rollbar_secrets.main import app

handler = Mangum(app, lifespan="off")
