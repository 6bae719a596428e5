from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import sync_engine, Base

# Import middleware
from app.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.inventory.router import parts_router
from app.modules.customers.router import router as customers_router
from app.modules.tickets.router import router as tickets_router
from app.modules.service_templates.router import router as service_templates_router
from app.modules.pos.routers import cash_registers_router, pos_sales_router
from app.modules.invoices.router import router as invoices_router
from app.modules.taxes.router import taxes_router
from app.modules.credit_notes.router import router as credit_notes_router
from app.modules.quotations.router import router as quotations_router
from app.modules.purchases.router import router as purchases_router

# Import models for table creation
import app.common.sequences
import app.modules.taxes.models
import app.modules.inventory.models
import app.modules.customers.models
import app.modules.service_templates.models
import app.modules.tickets.models
import app.modules.pos.models
import app.modules.invoices.models
import app.modules.credit_notes.models
import app.modules.quotations.models
import app.modules.purchases.models
import app.modules.notifications.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Taller360 API",
    description="Multi-tenant workshop management API: inventory, tickets, POS, cash registers and invoicing",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Middleware: el último agregado es el más externo
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(parts_router, prefix=settings.API_V1_PREFIX)
app.include_router(customers_router, prefix=settings.API_V1_PREFIX)
app.include_router(tickets_router, prefix=settings.API_V1_PREFIX)
app.include_router(service_templates_router, prefix=settings.API_V1_PREFIX)
app.include_router(cash_registers_router, prefix=settings.API_V1_PREFIX)
app.include_router(pos_sales_router, prefix=settings.API_V1_PREFIX)
app.include_router(invoices_router, prefix=settings.API_V1_PREFIX)
app.include_router(taxes_router, prefix=settings.API_V1_PREFIX)
app.include_router(credit_notes_router, prefix=settings.API_V1_PREFIX)
app.include_router(quotations_router, prefix=settings.API_V1_PREFIX)
app.include_router(purchases_router, prefix=settings.API_V1_PREFIX)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "Taller360 API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Taller360 API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Notifications enabled: {settings.NOTIFICATIONS_ENABLED}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Taller360 API shutting down...")
