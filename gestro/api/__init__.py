"""
HTTP routers, grouped by area.
"""

from gestro.api import admin, delivery, mcp, menu, notifications, orders, payments, profiles, reservations

routers = [
    profiles.router,
    menu.router,
    menu.admin_router,
    orders.router,
    delivery.router,
    delivery.admin_router,
    payments.router,
    payments.admin_router,
    reservations.router,
    admin.router,
    notifications.router,
    notifications.ws_router,
    mcp.router,
]

__all__ = ["routers"]
