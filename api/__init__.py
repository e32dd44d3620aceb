# API Module
# FastAPI routes and the principal resolver

from .routes import router
from .auth import get_current_principal

__all__ = ['router', 'get_current_principal']
