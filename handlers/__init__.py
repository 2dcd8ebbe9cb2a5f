# handlers/__init__.py
from aiogram import Dispatcher

from .admin import admin_router
from .customer import customer_router
from .rider import rider_router


def register_handlers(dp: Dispatcher):
    """
    Registers every router on the main dispatcher.
    Order matters.
    """
    # Rider router goes first so the photo-waiting state wins over generic message handlers
    dp.include_router(rider_router)

    dp.include_router(admin_router)
    dp.include_router(customer_router)
