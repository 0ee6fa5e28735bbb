"""
Core business logic for skill coaching.

This module is framework-agnostic - it doesn't import FastAPI, SQLite,
or the Anthropic SDK. The chat orchestration talks to storage and the
model through protocols, so it can be tested with plain fakes.
"""
