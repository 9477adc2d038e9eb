"""
Triage Desk Backend - Main Application Entry Point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import logger
from app.core.middleware import AuditLoggingMiddleware
from app.db import Base, SessionLocal, engine
from app.api.routes import decision_tables, triage, cases, servicenow
from app.services.decision_tables import seed_demo_tables
from app.services.triage.demo_tables import loan_decision_table, withdrawal_decision_table


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} in {settings.APP_ENV} mode")
    Base.metadata.create_all(bind=engine)
    if settings.SEED_DEMO_DATA:
        db = SessionLocal()
        try:
            created = seed_demo_tables(db, [loan_decision_table(), withdrawal_decision_table()])
            if created:
                logger.info(f"Seeded demo decision tables: {', '.join(created)}")
        finally:
            db.close()
    yield
    # Shutdown
    logger.info("Shutting down...")


app = FastAPI(
    title=settings.APP_NAME,
    description="Insurance transaction intake and triage",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AuditLoggingMiddleware)

# Include API Routers
app.include_router(decision_tables.router, prefix="/decision-tables", tags=["Decision Tables"])
app.include_router(triage.router, prefix="/triage", tags=["Triage"])
app.include_router(cases.router, prefix="/cases", tags=["Cases"])
app.include_router(servicenow.router, prefix="/servicenow-api", tags=["ServiceNow"])


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "env": settings.APP_ENV,
    }
