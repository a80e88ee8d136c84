"""Scoring and alerting services used by handlers.

The alert handlers build the engine lazily, so a cold start that only serves
health checks never constructs an alert store.
"""
