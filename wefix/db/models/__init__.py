# Models package (re-export feature modules for stable imports)
from .users.user import User

__all__ = [
    "User",
]
