"""
Contract Lifecycle API
HTTP surface over the blueprint store and the contract workflow engine.
"""

from dotenv import load_dotenv
load_dotenv()

import logging
from datetime import datetime, UTC
from typing import List, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, Response, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .blueprints import BlueprintStore
from .config import settings
from .database import build_engine, create_schema
from .errors import AuthenticationError, ContractFlowError
from .identity import IdentityProvider
from .models import (
    # Identity
    Actor,
    RegisterRequest,
    LoginRequest,
    LoginResponse,
    # Blueprints
    Blueprint,
    CreateBlueprintDTO,
    # Contracts
    Contract,
    InstantiateContractDTO,
    TransitionRecord,
    TransitionRequestDTO,
    UpdateFieldsDTO,
)
from .observers import EventPublisher, LogObserver, MetricsObserver
from .workflow import WorkflowEngine


# ============================================================================
# App Configuration
# ============================================================================

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("contractflow")

app = FastAPI(
    title="Contract Lifecycle API",
    version="1.0.0",
    description="Blueprints, contracts and their approval workflow",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)

security = HTTPBearer(auto_error=False)

# Error code -> HTTP status. ForbiddenError carries the NotFound code on purpose.
STATUS_BY_CODE = {
    "NotFound": 404,
    "IllegalTransition": 409,
    "Conflict": 409,
    "Immutable": 403,
    "ValidationFailed": 422,
    "Unauthorized": 401,
}


# ============================================================================
# Services (module-level so tests can swap them)
# ============================================================================

engine = build_engine(settings.database_url, echo=settings.sql_echo)
create_schema(engine)

log_observer = LogObserver()
metrics_observer = MetricsObserver()

identity = IdentityProvider(engine)
blueprints = BlueprintStore(engine)
workflow = WorkflowEngine(engine, blueprints, EventPublisher([log_observer, metrics_observer]))

logger.info("Using database %s (env=%s)", engine.url.render_as_string(hide_password=True), settings.app_env)


# ============================================================================
# Middleware & Error Handling
# ============================================================================

@app.middleware("http")
async def add_request_id_header(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or uuid4().hex
    resp: Response = await call_next(request)
    resp.headers.setdefault("X-Request-Id", request_id)
    return resp


@app.exception_handler(ContractFlowError)
async def contractflow_error_handler(request: Request, exc: ContractFlowError):
    return JSONResponse(status_code=STATUS_BY_CODE.get(exc.code, 500), content=exc.to_dict())


@app.exception_handler(Exception)
async def default_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL",
                "message": "Unhandled error",
                "details": [],
            }
        },
    )


# ============================================================================
# Authentication
# ============================================================================

def current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> Actor:
    """Resolve the bearer token into the acting user"""
    if not credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        return identity.resolve(credentials.credentials)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.post("/api/auth/register", response_model=Actor, status_code=201, tags=["auth"])
def register(payload: RegisterRequest) -> Actor:
    return identity.register(payload.name, payload.email, payload.password)


@app.post("/api/auth/login", response_model=LoginResponse, tags=["auth"])
def login(payload: LoginRequest) -> LoginResponse:
    try:
        token, actor = identity.login(payload.email, payload.password)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return LoginResponse(access_token=token, token_type="bearer", user=actor)


@app.post("/api/auth/logout", status_code=204, tags=["auth"])
def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    actor: Actor = Depends(current_actor),
):
    identity.logout(credentials.credentials)
    return None


# ============================================================================
# Blueprint Endpoints
# ============================================================================

@app.post("/api/blueprints", response_model=Blueprint, status_code=201, tags=["blueprints"])
def create_blueprint(data: CreateBlueprintDTO, actor: Actor = Depends(current_actor)) -> Blueprint:
    return blueprints.create_blueprint(data.name, data.fields, actor)


@app.get("/api/blueprints", response_model=List[Blueprint], tags=["blueprints"])
def list_blueprints(actor: Actor = Depends(current_actor)) -> List[Blueprint]:
    """Blueprints owned by the caller, newest first"""
    return blueprints.list_blueprints(actor)


@app.delete("/api/blueprints/{id}", status_code=204, tags=["blueprints"])
def delete_blueprint(id: str, actor: Actor = Depends(current_actor)):
    """Delete a blueprint; contracts created from it are untouched"""
    blueprints.delete_blueprint(id, actor)
    return None


# ============================================================================
# Contract Endpoints
# ============================================================================

@app.post("/api/contracts", response_model=Contract, status_code=201, tags=["contracts"])
def instantiate_contract(data: InstantiateContractDTO, actor: Actor = Depends(current_actor)) -> Contract:
    """Create a contract from any blueprint the caller can reference"""
    return workflow.instantiate(data.blueprint_id, data.name, actor)


@app.get("/api/contracts", response_model=List[Contract], tags=["contracts"])
def list_contracts(status: Optional[str] = None, actor: Actor = Depends(current_actor)) -> List[Contract]:
    return workflow.list_contracts(actor, status=status)


@app.get("/api/contracts/{id}", response_model=Contract, tags=["contracts"])
def get_contract(id: str, actor: Actor = Depends(current_actor)) -> Contract:
    return workflow.get_contract(id, actor)


@app.get("/api/contracts/{id}/history", response_model=List[TransitionRecord], tags=["contracts"])
def get_contract_history(id: str, actor: Actor = Depends(current_actor)) -> List[TransitionRecord]:
    """Audit trail, oldest first"""
    return workflow.history(id, actor)


@app.patch("/api/contracts/{id}/status", response_model=Contract, tags=["contracts"])
def change_status(id: str, data: TransitionRequestDTO, actor: Actor = Depends(current_actor)) -> Contract:
    return workflow.transition(id, data.next_status, actor)


@app.put("/api/contracts/{id}", response_model=Contract, tags=["contracts"])
def update_contract_fields(id: str, data: UpdateFieldsDTO, actor: Actor = Depends(current_actor)) -> Contract:
    """Replace the complete field set of an editable contract"""
    return workflow.update_fields(id, data.fields, actor)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health", tags=["health"])
def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "env": settings.app_env,
        "metrics": metrics_observer.get_metrics(),
    }
