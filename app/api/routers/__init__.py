"""
app/api/routers package marker.
"""

from app.api.routers.products_router import router as products_router

__all__ = [
    "products_router",
]
