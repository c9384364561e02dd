from .auth_profile import router as auth_profile_router
from .requests import router as requests_router
from .health import router as health_router

__all__ = [
	"auth_profile_router",
	"requests_router",
	"health_router",
]
