"""Core domain: models, store, change feed, live queries and services."""
