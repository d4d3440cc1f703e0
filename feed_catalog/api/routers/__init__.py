"""
FastAPI routers for organizing API endpoints.

Each module exposes an ``APIRouter`` that ``feed_catalog.main`` registers.
"""
