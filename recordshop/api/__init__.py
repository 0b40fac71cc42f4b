# recordshop/api/__init__.py
from fastapi import FastAPI
from recordshop.api.routers import carts, health, inventory, orders, records, seller_auth, users, webhooks


def create_app() -> FastAPI:
    app = FastAPI(
        title="Record Shop",
        version="1.0.0",
    )

    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(records.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(webhooks.router)
    app.include_router(inventory.router)
    app.include_router(seller_auth.router)

    return app
