"""
FastAPI application entry point.

Run with: uvicorn api.main:app --reload
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api.routes import cities, places

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create app
app = FastAPI(
    title="Coastal Places Explorer API",
    description="Coastal city boundaries and nearby places around California beach access",
    version="0.1.0",
)

# CORS middleware for the map client
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(cities.router, prefix="/cities", tags=["cities"])
app.include_router(places.router, tags=["places"])


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Coastal Places Explorer API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
