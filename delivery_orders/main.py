from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from delivery_orders.auth import install_principal_middleware
from delivery_orders.config import settings
from delivery_orders.errors import OrderingError
from delivery_orders.logging_config import get_logger, setup_logging
from delivery_orders.routers import orders, reports, subscriptions

setup_logging(log_level=settings.log_level, log_dir=settings.log_dir or None, json_files=settings.log_json)

logger = get_logger(__name__)

STATUS_BY_KIND = {
    'invalid_state': 409,
    'permission_denied': 403,
    'validation_error': 422,
    'not_found': 404,
    'insufficient_resource': 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info('Application startup complete', extra={'event': 'startup'})
    yield
    logger.info('Application shutting down', extra={'event': 'shutdown'})


app = FastAPI(title='Recurring Delivery Orders', lifespan=lifespan)

install_principal_middleware(app)


@app.exception_handler(OrderingError)
async def ordering_error_handler(request: Request, exc: OrderingError):
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    logger.info(
        'Rejected %s %s: %s',
        request.method,
        request.url.path,
        exc.message,
        extra={'kind': exc.kind, 'entity_id': exc.entity_id, 'status_code': status_code},
    )
    return JSONResponse(status_code=status_code, content=exc.as_dict())


app.include_router(orders.router)
app.include_router(subscriptions.router)
app.include_router(reports.router)


@app.get('/health')
def health_check() -> dict:
    return {'status': 'ok'}
