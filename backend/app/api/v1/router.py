from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.clients import router as clients_router
from backend.app.api.v1.endpoints.products import router as products_router
from backend.app.api.v1.endpoints.stock import router as stock_router
from backend.app.api.v1.endpoints.b2b import router as b2b_router
from backend.app.api.v1.endpoints.events import router as events_router
from backend.app.api.v1.endpoints.event_workers import router as event_workers_router
from backend.app.api.v1.endpoints.invoices import router as invoices_router
from backend.app.api.v1.endpoints.payments import router as payments_router
from backend.app.api.v1.endpoints.workers import router as workers_router
from backend.app.api.v1.endpoints.attendance import router as attendance_router
from backend.app.api.v1.endpoints.payroll import router as payroll_router
from backend.app.api.v1.endpoints.leads import router as leads_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(clients_router, tags=["clients"])
router.include_router(products_router, tags=["products"])
router.include_router(stock_router, tags=["stock"])
router.include_router(b2b_router, tags=["b2b"])
router.include_router(events_router, tags=["events"])
router.include_router(event_workers_router, tags=["events"])
router.include_router(invoices_router, tags=["invoices"])
router.include_router(payments_router, tags=["payments"])
router.include_router(workers_router, tags=["workers"])
router.include_router(attendance_router, tags=["attendance"])
router.include_router(payroll_router, tags=["payroll"])
router.include_router(leads_router, tags=["leads"])
