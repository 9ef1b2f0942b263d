from .admin import admin_menu_kb
from .student import back_button, main_menu_kb

__all__ = [
    "admin_menu_kb",
    "back_button",
    "main_menu_kb",
]
