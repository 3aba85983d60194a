import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session
from starlette.middleware.trustedhost import TrustedHostMiddleware

from eprojects.api.deps import resolve_access_token
from eprojects.api.router import router
from eprojects.core.config import settings
from eprojects.core.logging import configure_logging
from eprojects.db.session import SessionLocal, get_db
from eprojects.services.expiry import ExpirySweeper

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = None
    if settings.EXPIRY_SWEEP_ENABLED:
        sweeper = ExpirySweeper(SessionLocal, settings.EXPIRY_SWEEP_INTERVAL_SECONDS)
        sweeper.start()
    yield
    if sweeper is not None:
        await sweeper.stop()


app = FastAPI(
    title="E-Projects Platform",
    version="1.0.0",
    lifespan=lifespan,
)

allowed_hosts = [h.strip() for h in settings.ALLOWED_HOSTS.split(",") if h.strip()]
if not allowed_hosts:
    allowed_hosts = ["*"]
app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response: Response = await call_next(request)
    if settings.SECURITY_HEADERS_ENABLED:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
        response.headers["Content-Security-Policy"] = "frame-ancestors 'none'; base-uri 'self'"
        if settings.ENV != "dev":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Erro interno do servidor"})


app.include_router(router, prefix="/api")


@app.get("/health")
def health():
    return {"ok": True}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, db: Session = Depends(get_db)):
    await websocket.accept()
    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict) or message.get("type") != "auth":
                continue
            token = str(message.get("token") or "")
            try:
                user, _sid = resolve_access_token(token, db)
            except HTTPException as exc:
                await websocket.send_json({"type": "auth_result", "success": False, "error": exc.detail})
                continue
            await websocket.send_json({"type": "auth_result", "success": True, "userId": user.id})
    except WebSocketDisconnect:
        pass
