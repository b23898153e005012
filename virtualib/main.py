import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from virtualib.config import settings
from virtualib.database import engine, Base, SessionLocal
from virtualib.errors import register_exception_handlers
from virtualib.models.user import ROLE_NAMES, Role
from virtualib.routes import auth, library, category, book, request, loan, dashboard, role, user
from virtualib.routes import settings as settings_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log incoming requests for debugging."""
    async def dispatch(self, request: Request, call_next):
        auth_header = request.headers.get("Authorization")
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Auth: {'Present' if auth_header else 'Missing'}")
        response = await call_next(request)
        return response


def seed_roles(db) -> None:
    """Insert any missing role of the closed role catalog."""
    existing = {name for (name,) in db.query(Role.role_name).all()}
    missing = [name for name in ROLE_NAMES if name not in existing]
    for name in missing:
        db.add(Role(role_name=name))
    if missing:
        db.commit()
        logger.info(f"Seeded roles: {', '.join(missing)}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and seed roles on startup."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_roles(db)
    finally:
        db.close()
    logger.info("Virtualib API ready")

    yield

    logger.info("Shutting down, disposing database connections...")
    engine.dispose()


app = FastAPI(
    title="Virtualib API",
    description="Multi-tenant library management backend",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials="*" not in settings.cors_origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Logging middleware (last, to log everything)
app.add_middleware(LoggingMiddleware)

register_exception_handlers(app)

# Include routers
app.include_router(auth.router)
app.include_router(library.router)
app.include_router(category.router)
app.include_router(book.router)
app.include_router(request.router)
app.include_router(loan.router)
app.include_router(settings_routes.router)
app.include_router(dashboard.router)
app.include_router(role.router)
app.include_router(user.router)

@app.get("/")
async def root():
    return {"message": "Virtualib API", "version": "1.0.0"}

@app.get(f"{settings.api_prefix}/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    ssl_kwargs = {}
    if settings.ssl_enabled and settings.ssl_certfile and settings.ssl_keyfile:
        ssl_kwargs = {"ssl_certfile": settings.ssl_certfile, "ssl_keyfile": settings.ssl_keyfile}
    uvicorn.run(
        "virtualib.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        **ssl_kwargs
    )
