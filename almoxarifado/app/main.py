import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from almoxarifado.app.api.v1.router import router as v1_router
from almoxarifado.app.core.config import settings
from almoxarifado.services.errors import InsufficientStock, LedgerError

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Almoxarifado", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)

    content = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, InsufficientStock):
        content["product_id"] = exc.product_id
        content["available"] = exc.available
        content["requested"] = exc.requested
    return JSONResponse(status_code=exc.status_code, content=content)


if __name__ == "__main__":
    uvicorn.run("almoxarifado.app.main:app", host="0.0.0.0", port=8000, reload=True)
