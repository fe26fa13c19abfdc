# main.py
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import databases
import sqlalchemy
from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from accounts import Authenticator
from activity import ActivityRecorder
from config import Settings, configure_logging
from errors import register_exception_handlers
from inventory import InventoryLedger
from models import Base, Role
from schemas import (
    ActivityLogEntry,
    Drug,
    DrugIn,
    HealthStatus,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    SellRequest,
)
from security import SessionAssertion, SessionTokens, authorize, make_password_context

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
# 1. Application container: database + components, built from Settings
# -------------------------------------------------------------------

class Pharmacy:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.database = databases.Database(settings.database_url)
        self.tokens = SessionTokens(
            settings.secret_key,
            settings.algorithm,
            timedelta(minutes=settings.access_token_expire_minutes),
        )
        self.recorder = ActivityRecorder(self.database, settings.recent_activity_limit)
        self.authenticator = Authenticator(
            self.database,
            make_password_context(settings.bcrypt_rounds),
            self.tokens,
            self.recorder,
        )
        self.ledger = InventoryLedger(self.database, self.recorder)

    def create_tables(self) -> None:
        # Tables are created if missing; there is no migration tooling
        sync_engine = sqlalchemy.create_engine(self.settings.sync_database_url)
        try:
            Base.metadata.create_all(sync_engine)
        finally:
            sync_engine.dispose()

    async def startup(self) -> None:
        await self.database.connect()
        self.create_tables()
        await self.authenticator.ensure_admin(
            self.settings.bootstrap_admin_username,
            self.settings.bootstrap_admin_password,
        )
        logger.info("Pharmacy API started")

    async def shutdown(self) -> None:
        await self.database.disconnect()
        logger.info("Pharmacy API stopped")


# -------------------------------------------------------------------
# 2. Dependencies: authentication first, then role checks
# -------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)


def get_pharmacy(request: Request) -> Pharmacy:
    return request.app.state.pharmacy


async def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    pharmacy: Pharmacy = Depends(get_pharmacy),
) -> SessionAssertion:
    token = credentials.credentials if credentials else None
    return pharmacy.tokens.verify(token)


def require_roles(*roles: Role):
    async def dependency(session: SessionAssertion = Depends(get_current_session)) -> SessionAssertion:
        return authorize(session, roles)
    return dependency


require_admin = require_roles(Role.ADMIN)
require_seller = require_roles(Role.ADMIN, Role.CASHIER)

# -------------------------------------------------------------------
# 3. Auth endpoints
# -------------------------------------------------------------------

auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    payload: RegisterRequest,
    admin: SessionAssertion = Depends(require_admin),
    pharmacy: Pharmacy = Depends(get_pharmacy),
):
    """
    Create a cashier or admin account. Admin only.
    """
    account = await pharmacy.authenticator.register(
        admin, payload.username, payload.password, payload.role
    )
    return {"message": "User registered successfully", "user": account}


@auth_router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, pharmacy: Pharmacy = Depends(get_pharmacy)):
    """
    Exchange username & password for a bearer token.
    """
    session, token = await pharmacy.authenticator.login(payload.username, payload.password)
    return {"token": token, "role": session.role, "username": session.username}

# -------------------------------------------------------------------
# 4. Drug endpoints
# -------------------------------------------------------------------

drugs_router = APIRouter(prefix="/drugs", tags=["drugs"])


@drugs_router.get("", response_model=List[Drug])
async def list_drugs(
    session: SessionAssertion = Depends(get_current_session),
    pharmacy: Pharmacy = Depends(get_pharmacy),
):
    return await pharmacy.ledger.list()


@drugs_router.get("/{drug_id}", response_model=Drug)
async def get_drug(
    drug_id: int,
    session: SessionAssertion = Depends(get_current_session),
    pharmacy: Pharmacy = Depends(get_pharmacy),
):
    return await pharmacy.ledger.get(drug_id)


@drugs_router.post("", response_model=Drug, status_code=status.HTTP_201_CREATED)
async def add_drug(
    payload: DrugIn,
    admin: SessionAssertion = Depends(require_admin),
    pharmacy: Pharmacy = Depends(get_pharmacy),
):
    return await pharmacy.ledger.create(admin, payload)


@drugs_router.put("/sell/{drug_id}", response_model=Drug)
async def sell_drug(
    drug_id: int,
    payload: SellRequest,
    seller: SessionAssertion = Depends(require_seller),
    pharmacy: Pharmacy = Depends(get_pharmacy),
):
    """
    Sell stock. Admins and cashiers.
    """
    return await pharmacy.ledger.sell(seller, drug_id, payload.quantity_sold)


@drugs_router.put("/{drug_id}", response_model=Drug)
async def update_drug(
    drug_id: int,
    payload: DrugIn,
    admin: SessionAssertion = Depends(require_admin),
    pharmacy: Pharmacy = Depends(get_pharmacy),
):
    return await pharmacy.ledger.update(admin, drug_id, payload)


@drugs_router.delete("/{drug_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_drug(
    drug_id: int,
    admin: SessionAssertion = Depends(require_admin),
    pharmacy: Pharmacy = Depends(get_pharmacy),
):
    await pharmacy.ledger.delete(admin, drug_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# -------------------------------------------------------------------
# 5. Admin: activity log & audit report
# -------------------------------------------------------------------

admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.get("/logs", response_model=List[ActivityLogEntry])
async def recent_activity(
    admin: SessionAssertion = Depends(require_admin),
    pharmacy: Pharmacy = Depends(get_pharmacy),
):
    """
    Most recent activity, newest first.
    """
    return await pharmacy.recorder.list_recent()


@admin_router.get("/audit-report", response_model=List[ActivityLogEntry])
async def audit_report(
    admin: SessionAssertion = Depends(require_admin),
    pharmacy: Pharmacy = Depends(get_pharmacy),
):
    """
    Full audit trail in chronological order, for report export.
    """
    return await pharmacy.recorder.list_all()


@admin_router.get("/audit-report/csv")
async def audit_report_csv(
    admin: SessionAssertion = Depends(require_admin),
    pharmacy: Pharmacy = Depends(get_pharmacy),
):
    content = await pharmacy.recorder.export_csv()
    filename = f"audit_report_{datetime.now(timezone.utc):%Y%m%d}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

# -------------------------------------------------------------------
# 6. App factory
# -------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)
    pharmacy = Pharmacy(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await pharmacy.startup()
        yield
        await pharmacy.shutdown()

    app = FastAPI(title="Pharmacy Inventory API", lifespan=lifespan)
    app.state.pharmacy = pharmacy

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(auth_router, prefix=settings.api_prefix)
    app.include_router(drugs_router, prefix=settings.api_prefix)
    app.include_router(admin_router, prefix=settings.api_prefix)

    @app.get(f"{settings.api_prefix}/health", response_model=HealthStatus)
    async def health_check():
        """
        Simple health check endpoint.
        """
        return {"status": "OK", "timestamp": datetime.now(timezone.utc)}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=5000)
