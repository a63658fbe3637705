"""Service layer for business logic.

Services encapsulate all business logic, keeping routes thin and focused
on HTTP handling. This separation provides:
- Streak, stats and leaderboard rules in one place
- Orchestration of multiple repositories per operation
- Reusable business logic across multiple endpoints

Layer hierarchy:
    Routes (HTTP) -> Services (Business Logic) -> Repositories (Key-value store)

Services should:
- Contain all business rules and validation
- Orchestrate calls to repositories
- Return dataclasses (not raw store hashes)
- Raise domain exceptions defined in the service module

Services should NOT:
- Build store keys or touch store primitives directly (use repositories)
- Know about HTTP request/response details
- Return Pydantic schema objects (routes do the conversion)
"""
