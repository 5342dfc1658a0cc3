"""API v1 router aggregation."""

from fastapi import APIRouter

from app.api.v1.routers import bookings, coach_requests, coaches, courses, pricing, tokens

api_router = APIRouter()

# Include all v1 routers
api_router.include_router(pricing.router)  # Price quotes (no auth)
api_router.include_router(tokens.router)  # Token balance, history and top-ups
api_router.include_router(bookings.router)  # Coach session bookings
api_router.include_router(coach_requests.router)  # Coach-authored plans
api_router.include_router(courses.router)  # AI-generated courses
api_router.include_router(coaches.router)  # Coach catalogue and availability
