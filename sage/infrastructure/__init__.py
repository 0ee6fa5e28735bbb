"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- anthropic: Claude Messages API client
- sqlite: Local database persistence

These wrappers translate between external formats and our domain models.
"""
