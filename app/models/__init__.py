from app.models.base import Base
from app.models.buyer import Buyer
from app.models.buyer_history import BuyerHistory

__all__ = [
    "Base",
    "Buyer",
    "BuyerHistory",
]
