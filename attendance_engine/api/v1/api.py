"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from attendance_engine.api.v1.endpoints import (attendance, auth, batches, day_entries,
                                                employees, mappings, settings)

api_router = APIRouter()

# Auth (login, refresh, accounts)
api_router.include_router(auth.router)

# Employees and work weeks
api_router.include_router(employees.router)

# Provider code ↔ employee mappings, review queue
api_router.include_router(mappings.router)

# Ingestion, provider sync, manual punches, event feed
api_router.include_router(attendance.router)

# Composed day entries and overrides
api_router.include_router(day_entries.router)

# Auto checkout, backfill, operation log
api_router.include_router(batches.router)

# Attendance rules, health
api_router.include_router(settings.router)
