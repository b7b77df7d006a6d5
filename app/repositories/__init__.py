"""Repository layer – all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
only contains business logic.
"""

from app.repositories.buyer_repository import BuyerRepository

__all__ = [
    "BuyerRepository",
]
