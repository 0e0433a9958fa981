"""
FastAPI application for the SOS coach.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, WebSocket

# Configure logging to show INFO from soscoach modules
logging.basicConfig(level=logging.INFO, format="%(name)s - %(levelname)s - %(message)s")
logging.getLogger("soscoach").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware

from .routes import get_services, router
from .websocket import websocket_endpoint

app = FastAPI(
    title="SOS Coach",
    description="Guided craving and energy support sessions for coaching clients",
    version="0.1.0",
)

# CORS for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/")
async def root():
    return {"message": "SOS Coach API", "docs": "/docs"}


@app.websocket("/ws/sos")
async def ws_endpoint(websocket: WebSocket):
    """WebSocket endpoint for real-time SOS sessions."""
    await websocket_endpoint(websocket, get_services())
