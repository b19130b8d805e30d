from fastapi import APIRouter

from almoxarifado.app.api.v1.endpoints.health import router as health_router
from almoxarifado.app.api.v1.endpoints.products import router as products_router
from almoxarifado.app.api.v1.endpoints.stock_movements import router as stock_movements_router
from almoxarifado.app.api.v1.endpoints.requests import router as requests_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(products_router, tags=["products"])
router.include_router(stock_movements_router, tags=["stock_movements"])
router.include_router(requests_router, tags=["requests"])
