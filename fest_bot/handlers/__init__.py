from .common import router as common_router
from .student_menu import router as student_menu_router
from .admin_menu import router as admin_menu_router
from .errors import router as errors_router

__all__ = [
    "common_router",
    "student_menu_router",
    "admin_menu_router",
    "errors_router",
]
