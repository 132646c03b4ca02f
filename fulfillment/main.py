from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException
import structlog

from fulfillment.version import VERSION
from fulfillment.api import routes
from fulfillment.core.errors import FulfillmentError
from fulfillment.core.logging import configure_logging
from fulfillment.kafka import producer

configure_logging()
log = structlog.get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title="Fulfillment Service", version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/fulfillment/metrics",
    should_gzip=True,
)

@app.middleware("http")
async def cors(request: Request, call_next):
    if request.method == "OPTIONS":
        return PlainTextResponse("ok", headers=CORS_HEADERS)
    response = await call_next(request)
    for k, v in CORS_HEADERS.items():
        response.headers[k] = v
    return response

@app.exception_handler(FulfillmentError)
async def fulfillment_error(request: Request, exc: FulfillmentError):
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)

@app.exception_handler(HTTPException)
async def http_error(request: Request, exc: HTTPException):
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errs = exc.errors()
    first = errs[0] if errs else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "Invalid request"))
    return JSONResponse({"error": message}, status_code=400)

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/fulfillment/health")
def fulfillment_health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "fulfillment", "version": VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            log.debug("route", methods=sorted(route.methods), path=route.path)

@app.on_event("shutdown")
async def shutdown_event():
    producer.close()

app.include_router(routes.router, prefix="/functions/v1", tags=["fulfillment"])
