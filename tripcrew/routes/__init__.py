from fastapi import APIRouter

from tripcrew.routes.auth import auth
from tripcrew.routes.trip import trip_routes, trip_member, timeline
from tripcrew.routes.expense import spend, settlement
from tripcrew.routes.choices import choice_routes
from tripcrew.routes.lists import list_routes
from tripcrew.routes.transport import transport_routes


api_router = APIRouter()

# Auth routes
api_router.include_router(auth.router)

# Trip routes
api_router.include_router(trip_routes.router)
api_router.include_router(trip_member.router)
api_router.include_router(timeline.router)

# Spend and settlement routes
api_router.include_router(spend.router)
api_router.include_router(settlement.router)

# Choice routes
api_router.include_router(choice_routes.router)

# List routes
api_router.include_router(list_routes.router)

# Transport routes
api_router.include_router(transport_routes.router)
