"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routers import query

app = FastAPI(
    title="CRM Natural-Language Query Engine",
    version="0.1.0",
    description="Pattern-based NL-to-SQL for tenant-scoped CRM questions (dry-run, no execution)",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(query.router, prefix="/query", tags=["Query"])


@app.get("/health")
def health():
    return {"status": "ok"}
