from models.card import Card
from models.deck import Deck
from models.refresh_token import RefreshToken
from models.user import User

__all__ = ["Card", "Deck", "RefreshToken", "User"]
