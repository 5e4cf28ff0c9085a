"""FastAPI application setup for Ridecast."""

from fastapi import FastAPI

from .api import router as api_router

app = FastAPI(title="Ridecast")

# API routes
app.include_router(api_router, prefix="/v1")
