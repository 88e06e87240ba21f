"""
Dairy Books: FastAPI application.

This is the entry point for the application.
All routers are registered here.
"""

from fastapi import FastAPI

from dairy_books.api.health import router as health_router
from dairy_books.api.ledgers import router as ledgers_router
from dairy_books.api.maintenance import router as maintenance_router
from dairy_books.api.vouchers import router as vouchers_router
from dairy_books.config import get_settings
from dairy_books.logging_config import setup_logging

settings = get_settings()
setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Double-entry ledger and voucher posting for a dairy business",
)

# Register routers
app.include_router(health_router)
app.include_router(ledgers_router)
app.include_router(vouchers_router)
app.include_router(maintenance_router)
