from .generations import router as generations_router
from .usage import router as usage_router

__all__ = [
    "generations_router",
    "usage_router",
]
