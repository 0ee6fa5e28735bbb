"""HTTP surface: FastAPI routers and dependency providers."""
