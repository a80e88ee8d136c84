"""API Gateway HTTP API handlers; ``main.lambda_handler`` is the entrypoint."""
