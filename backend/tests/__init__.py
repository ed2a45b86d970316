"""
Pytest suite for the delivery order core.

Test categories:
- Unit tests: pure policy (transition table, penalty math, event routing)
- Integration tests: services against an in-memory SQLite order store
- API tests: the FastAPI app over httpx with the test session injected
"""
