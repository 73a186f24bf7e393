from .assets_api import router as assets_api_router
from .calendar_api import router as calendar_api_router
from .history_api import router as history_api_router
from .loans_api import router as loans_api_router
from .reservations_api import router as reservations_api_router

ALL_ROUTERS = (
    assets_api_router,
    loans_api_router,
    reservations_api_router,
    calendar_api_router,
    history_api_router,
)
