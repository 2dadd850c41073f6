from src.infrastructure.plans.in_memory import InMemorySystematicPlanRepository
from src.infrastructure.plans.postgres import PostgresSystematicPlanRepository

__all__ = ["InMemorySystematicPlanRepository", "PostgresSystematicPlanRepository"]
