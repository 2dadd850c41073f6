from src.infrastructure.order_book.in_memory import InMemoryOrderBook, SubmittedOrder

__all__ = ["InMemoryOrderBook", "SubmittedOrder"]
