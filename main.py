import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select, text
import logging

from config import settings
from database import SessionLocal, engine, init_models
from auth_utils import get_password_hash
from errors import ServiceError
from models import User
from routers.auth import auth_router
from routers.users import users_router
from routers.partners import partners_router
from routers.campaigns import campaigns_router
from routers.donations import donations_router
from routers.razorpay import razorpay_router
from routers.donation_coupons import donation_coupons_router
from routers.coupon_claims import coupon_claims_router
from routers.coupons import coupons_router
from routers.wallets import wallets_router
from routers.volunteers import volunteers_router
from routers.events import event_registrations_router, events_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
log = logging.getLogger(__name__)


async def create_admin_user():
    """Ensures the default admin user exists and is approved."""
    async with SessionLocal() as db:
        result = await db.execute(select(User).filter(User.email == settings.ADMIN_EMAIL))
        admin_user = result.scalars().first()

        if not admin_user:
            db.add(User(
                name="Admin User",
                email=settings.ADMIN_EMAIL,
                hashed_password=get_password_hash(settings.ADMIN_PASSWORD),
                role="admin",
                is_active=True,
                is_approved=True,
            ))
            await db.commit()
            log.info(f"Default admin user created: {settings.ADMIN_EMAIL}")
        elif admin_user.role != "admin" or not admin_user.is_approved:
            admin_user.role = "admin"
            admin_user.is_approved = True
            await db.commit()
            log.info(f"Admin rights restored for {settings.ADMIN_EMAIL}")


async def test_db_connection():
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    log.info("Database connection OK")


app = FastAPI(title="Charity Platform API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc.kind} - {exc.message}")
    else:
        log.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code or exc.kind}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def startup_event():
    log.info("Initializing application...")
    await init_models()
    await test_db_connection()
    if settings.CREATE_DEFAULT_ADMIN:
        await create_admin_user()
    if not settings.payment_gateway_configured:
        log.warning("Razorpay credentials not set; payment endpoints will fail with a dependency error")
    if not settings.email_configured:
        log.warning("AWS SES credentials not set; emails will be skipped")
    log.info("Application ready")


@app.get("/health")
async def health():
    return {"success": True, "status": "ok"}


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(partners_router)
app.include_router(campaigns_router)
app.include_router(donations_router)
app.include_router(razorpay_router)
app.include_router(donation_coupons_router)
app.include_router(coupon_claims_router)
app.include_router(coupons_router)
app.include_router(wallets_router)
app.include_router(volunteers_router)
app.include_router(events_router)
app.include_router(event_registrations_router)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
