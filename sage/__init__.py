"""
Sage - a personal AI skill coach.

This package contains the complete application:
- core: Framework-agnostic domain models and chat orchestration
- infrastructure: External service integrations (Claude API, SQLite)
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
