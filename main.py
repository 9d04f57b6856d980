"""
FastAPI Application for the Wanterio healthcare portal.

Composition root: builds one CartManager and one SessionManager per process
in the lifespan hook and exposes thin JSON endpoints over them.
"""

import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from auth import LoginRequest, LoginResponse, SignUpRequest
from config import Settings, settings
from core.data import AuthUser, IdentityProvider, RecordStore
from core.roles import ADMIN_ROLES
from core.session import AuthError, SessionError, SessionManager, SessionSnapshot, SessionState
from core.storage import JsonFileStorage, LocalStorage
from cosmos_backend import create_backend
from use_cases.admin import AdminError, AdminService
from use_cases.healthcare import BookingError, BookingService
from use_cases.pharmacy import (
    CartManager,
    CartRemoteSync,
    CatalogError,
    CheckoutError,
    CheckoutService,
    MedicineCatalog,
)
from use_cases.pharmacy.domain import OrderTotalsCalculator

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Reduce Azure SDK logging verbosity
logging.getLogger("azure.cosmos").setLevel(logging.WARNING)
logging.getLogger("azure.core").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)


# =============================================================================
# COMPOSITION
# =============================================================================

@dataclass
class Portal:
    """Every long-lived component of the application."""
    store: RecordStore
    identity: IdentityProvider
    session: SessionManager
    cart: CartManager
    catalog: MedicineCatalog
    checkout: CheckoutService
    bookings: BookingService
    admin: AdminService


def build_portal(
    store: RecordStore,
    identity: IdentityProvider,
    storage: LocalStorage,
    config: Settings = settings,
) -> Portal:
    """Wire the managers and services around one store and identity provider."""
    timeout = config.backend_timeout_seconds

    cart = CartManager(
        storage,
        storage_key=config.cart_storage_key,
        remote=CartRemoteSync(store, timeout),
    )
    session = SessionManager(
        identity,
        store,
        allow_local_default_role=config.allow_local_default_role,
        home_path=config.home_path,
        auth_path_prefix=config.auth_path_prefix,
        timeout_seconds=timeout,
    )

    def follow_session(snapshot: SessionSnapshot):
        # Signed-in carts are mirrored to the backend; anonymous carts stay local
        if snapshot.is_authenticated:
            cart.attach_user(snapshot.user.id)
        elif snapshot.state == SessionState.UNAUTHENTICATED:
            cart.detach_user()

    session.subscribe(follow_session)

    catalog = MedicineCatalog(store, timeout)
    calculator = OrderTotalsCalculator(
        tax_rate=config.tax_rate,
        free_shipping_threshold=config.free_shipping_threshold,
        shipping_fee=config.shipping_fee,
    )
    return Portal(
        store=store,
        identity=identity,
        session=session,
        cart=cart,
        catalog=catalog,
        checkout=CheckoutService(cart, catalog, store, calculator=calculator, timeout_seconds=timeout),
        bookings=BookingService(store, timeout),
        admin=AdminService(store, identity, timeout),
    )


def default_portal(config: Settings = settings) -> Portal:
    store, identity = create_backend(config)
    return build_portal(store, identity, JsonFileStorage(config.cart_storage_path), config)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class AddItemRequest(BaseModel):
    medicine_id: str
    quantity: int = 1


class QuantityRequest(BaseModel):
    quantity: int


class CheckoutRequest(BaseModel):
    shipping_info: Dict[str, Any] = Field(default_factory=dict)
    payment_method: str = "cod"


class AppointmentBody(BaseModel):
    doctor_id: Optional[str] = None
    clinic_id: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    notes: Optional[str] = None


class AmbulanceBody(BaseModel):
    pickup_location: str = ""
    destination: str = ""
    emergency_type: str = ""


# =============================================================================
# APPLICATION
# =============================================================================

def create_app(portal_factory: Callable[[], Portal] = default_portal) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        portal_factory: Builds the Portal at startup (tests pass in-memory fakes)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager - handles startup and shutdown."""
        logger.info("Starting Wanterio portal...")
        portal = portal_factory()
        await portal.session.start()
        app.state.portal = portal
        logger.info(
            f"Portal ready (backend configured: {portal.store.is_configured}, "
            f"session: {portal.session.state.value})"
        )

        yield

        logger.info("Shutting down...")
        portal.session.stop()
        await portal.cart.drain_sync()

    app = FastAPI(
        title="Wanterio Portal",
        description="Healthcare portal: pharmacy cart, appointments and emergency requests",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc"
    )

    # CORS middleware for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


def get_portal(request: Request) -> Portal:
    return request.app.state.portal


def _request_token(request: Request) -> Optional[str]:
    """Bearer header first, then X-Auth-Token, then the auth_token cookie."""
    auth_header = request.headers.get("Authorization", "")
    token = auth_header[len("Bearer "):] if auth_header.startswith("Bearer ") else None
    if not token:
        token = request.headers.get("X-Auth-Token")
    if not token:
        token = request.cookies.get("auth_token")
    return token or None


async def _caller_session(request: Request, portal: Portal) -> Optional[SessionSnapshot]:
    """The session snapshot when the request carries the live session token, else None."""
    token = _request_token(request)
    if not token:
        return None
    session = await portal.identity.get_current_session()
    if session is None or not secrets.compare_digest(token, session.access_token):
        return None
    snapshot = portal.session.snapshot
    if snapshot.user is not None and snapshot.user.id != session.user.id:
        return None
    return snapshot


async def current_user(request: Request, portal: Portal = Depends(get_portal)) -> AuthUser:
    """
    Resolve the caller from their session token.

    Raises:
        AuthError: no token, or the token is not the live session's
        SessionError: the session exists but role resolution blocked it
    """
    if not _request_token(request):
        raise AuthError("Not signed in")
    snapshot = await _caller_session(request, portal)
    if snapshot is None:
        raise AuthError("Invalid or expired session")
    if not snapshot.is_authenticated:
        raise SessionError(snapshot.error or "Session is not ready")
    return snapshot.user


def _cart_payload(portal: Portal, **extra) -> Dict[str, Any]:
    payload = dict(extra)
    payload["cart"] = portal.cart.get_cart().to_dict()
    return payload


def _register_error_handlers(app: FastAPI):

    @app.exception_handler(AuthError)
    async def auth_error(request: Request, exc: AuthError):
        status = 503 if exc.cause is not None and exc.cause.is_not_configured else 401
        return JSONResponse(status_code=status, content={"error": exc.message})

    @app.exception_handler(SessionError)
    async def session_error(request: Request, exc: SessionError):
        return JSONResponse(status_code=403, content={"error": exc.message})

    @app.exception_handler(CatalogError)
    async def catalog_error(request: Request, exc: CatalogError):
        status = 503 if exc.error.is_not_configured else 502
        return JSONResponse(status_code=status, content={"error": str(exc)})

    @app.exception_handler(CheckoutError)
    async def checkout_error(request: Request, exc: CheckoutError):
        status = 503 if exc.cause is not None and exc.cause.is_not_configured else 400
        return JSONResponse(status_code=status, content={"error": exc.message, "errors": exc.errors})

    @app.exception_handler(BookingError)
    async def booking_error(request: Request, exc: BookingError):
        return JSONResponse(status_code=400, content={"error": exc.message, "errors": exc.errors})

    @app.exception_handler(AdminError)
    async def admin_error(request: Request, exc: AdminError):
        status = 503 if exc.cause is not None and exc.cause.is_not_configured else 400
        return JSONResponse(status_code=status, content={"error": exc.message})


def _register_routes(app: FastAPI):

    @app.get("/health")
    async def health_check(portal: Portal = Depends(get_portal)):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": "1.0.0",
            "backend_configured": portal.store.is_configured,
            "session": portal.session.state.value,
        }

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    @app.get("/api/session")
    async def get_session(request: Request, portal: Portal = Depends(get_portal)):
        # Callers without the live token only ever see the signed-out view
        snapshot = await _caller_session(request, portal) or SessionSnapshot()
        payload = snapshot.to_dict()
        payload["route"] = portal.session.navigator.current_path
        return payload

    @app.post("/api/auth/login")
    async def login(request: LoginRequest, portal: Portal = Depends(get_portal)):
        """Authenticate with email and password and resolve the user's roles."""
        auth_session = await portal.session.sign_in(request.email, request.password)

        snapshot = portal.session.snapshot
        if snapshot.error:
            raise SessionError(snapshot.error)
        if snapshot.is_authenticated:
            await portal.cart.load_remote(snapshot.user.id)

        logger.info(f"User logged in: {request.email}")
        return LoginResponse(
            success=True,
            message="Login successful",
            token=auth_session.access_token,
            user=dict(
                auth_session.user.to_dict(),
                roles=list(snapshot.roles),
                landing_route=snapshot.landing_route,
            ),
        )

    @app.post("/api/auth/signup")
    async def signup(request: SignUpRequest, portal: Portal = Depends(get_portal)):
        user = await portal.session.sign_up(request.email, request.password, request.full_name)
        return {"success": True, "message": "Account created", "user": user.to_dict()}

    @app.post("/api/auth/logout")
    async def logout(request: Request, portal: Portal = Depends(get_portal)):
        if await _caller_session(request, portal) is None:
            return {"success": True, "message": "No active session"}
        await portal.session.sign_out()
        return {"success": True, "message": "Logged out successfully"}

    # =========================================================================
    # CART
    # =========================================================================

    @app.get("/api/cart")
    async def get_cart(portal: Portal = Depends(get_portal)):
        return portal.cart.get_cart().to_dict()

    @app.post("/api/cart/items")
    async def add_cart_item(request: AddItemRequest, portal: Portal = Depends(get_portal)):
        medicine = await portal.catalog.get_medicine(request.medicine_id)
        if medicine is None:
            return JSONResponse(status_code=404, content={"error": "Medicine not found"})
        added = portal.cart.add_item(medicine, request.quantity)
        return _cart_payload(portal, success=added)

    @app.patch("/api/cart/items/{item_id}")
    async def update_cart_item(item_id: str, request: QuantityRequest, portal: Portal = Depends(get_portal)):
        updated = portal.cart.update_quantity(item_id, request.quantity)
        return _cart_payload(portal, success=updated)

    @app.delete("/api/cart/items/{item_id}")
    async def remove_cart_item(item_id: str, portal: Portal = Depends(get_portal)):
        portal.cart.remove_item(item_id)
        return _cart_payload(portal, success=True)

    @app.delete("/api/cart")
    async def clear_cart(portal: Portal = Depends(get_portal)):
        portal.cart.clear_cart()
        return _cart_payload(portal, success=True)

    @app.post("/api/cart/validate")
    async def validate_cart(portal: Portal = Depends(get_portal)):
        return portal.cart.validate_stock().to_dict()

    # =========================================================================
    # PHARMACY
    # =========================================================================

    @app.get("/api/medicines")
    async def list_medicines(search: Optional[str] = None, portal: Portal = Depends(get_portal)):
        result = await portal.catalog.list_medicines(search)
        return {
            "medicines": [medicine.to_dict() for medicine in result.medicines],
            "available": result.available,
        }

    @app.post("/api/checkout")
    async def checkout(
        request: CheckoutRequest,
        user: AuthUser = Depends(current_user),
        portal: Portal = Depends(get_portal),
    ):
        confirmation = await portal.checkout.place_order(
            user.id, request.shipping_info, request.payment_method
        )
        return {"success": True, "order": confirmation.to_dict()}

    # =========================================================================
    # HEALTHCARE
    # =========================================================================

    @app.post("/api/appointments")
    async def book_appointment(
        request: AppointmentBody,
        user: AuthUser = Depends(current_user),
        portal: Portal = Depends(get_portal),
    ):
        appointment = await portal.bookings.book_appointment(
            user.id,
            doctor_id=request.doctor_id,
            clinic_id=request.clinic_id,
            appointment_date=request.appointment_date,
            appointment_time=request.appointment_time,
            notes=request.notes,
        )
        return {"success": True, "appointment": appointment.to_dict()}

    @app.post("/api/ambulance-requests")
    async def request_ambulance(
        request: AmbulanceBody,
        user: AuthUser = Depends(current_user),
        portal: Portal = Depends(get_portal),
    ):
        ambulance = await portal.bookings.request_ambulance(
            user.id,
            pickup_location=request.pickup_location,
            destination=request.destination,
            emergency_type=request.emergency_type,
        )
        return {"success": True, "request": ambulance.to_dict()}

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    @app.get("/api/admin/stats")
    async def admin_stats(user: AuthUser = Depends(current_user), portal: Portal = Depends(get_portal)):
        portal.session.require_role(*ADMIN_ROLES)
        return await portal.admin.system_stats()


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
