from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

# Import database components
from stockbill.database.database import engine, Base
import stockbill.database.models  # noqa: F401  registra todos los modelos en Base.metadata

from stockbill.core.config import settings
from stockbill.core.exception_handlers import register_exception_handlers

# Import middleware
from stockbill.common.middleware import TenantMiddleware

# Import routers
from stockbill.modules.invoices.router import invoices_router
from stockbill.modules.payments.router import payments_router
from stockbill.modules.inventory.router import movements_router, product_movements_router

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="StockBill API",
    description="Multi-tenant invoicing and stock ledger API built with FastAPI and PostgreSQL",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware
app.add_middleware(TenantMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(invoices_router)
app.include_router(payments_router)
app.include_router(movements_router)
app.include_router(product_movements_router)


@app.get("/")
async def read_root():
    return {
        "message": "StockBill API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("StockBill API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        Base.metadata.create_all(bind=engine)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("StockBill API shutting down...")
