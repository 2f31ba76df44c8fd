"""AWS Lambda entry point.

Mangum translates API Gateway HTTP API (v2) events into ASGI,
letting the FastAPI app run unchanged on Lambda. The rate-limit map
lives per warm container there, so limits are per instance.
"""

from mangum import Mangum

from ghardaar.main import app

handler = Mangum(app, lifespan="off")
