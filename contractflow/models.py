"""
Backend Data Models
SQLModel tables for persistence plus the pydantic DTOs exposed by the API.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .fields import FieldDefinition


class WorkflowState(str, Enum):
    created = "CREATED"
    approved = "APPROVED"
    sent = "SENT"
    signed = "SIGNED"
    locked = "LOCKED"
    revoked = "REVOKED"


# ============================================================================
# DATABASE MODELS
# ============================================================================

class UserTable(SQLModel, table=True):
    """Accounts known to the identity provider"""
    __tablename__ = "users"

    id: str = Field(primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    password_hash: str
    created_at: str  # ISO timestamp


class SessionTable(SQLModel, table=True):
    """Opaque bearer tokens issued at login"""
    __tablename__ = "sessions"

    token: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    created_at: str  # ISO timestamp
    expires_at: str  # ISO timestamp


class BlueprintTable(SQLModel, table=True):
    """Reusable document template"""
    __tablename__ = "blueprints"

    id: str = Field(primary_key=True)
    name: str
    owner_id: str = Field(index=True)
    fields: str  # JSON serialized field definitions
    created_at: str = Field(index=True)  # ISO timestamp


class ContractTable(SQLModel, table=True):
    """
    Contract instance.
    `version` is bumped on every write and used as the optimistic
    concurrency token for transitions and field updates.
    """
    __tablename__ = "contracts"

    id: str = Field(primary_key=True)
    name: str
    # Weak reference: the blueprint may be deleted, the contract keeps its own fields
    blueprint_id: Optional[str] = Field(default=None, index=True)
    owner_id: str = Field(index=True)
    status: str = Field(default=WorkflowState.created.value, index=True)
    fields: str  # JSON serialized field definitions
    version: int = Field(default=1)
    created_at: str = Field(index=True)  # ISO timestamp
    updated_at: str  # ISO timestamp


class TransitionRecordTable(SQLModel, table=True):
    """Append-only audit trail row, one per successful status change"""
    __tablename__ = "transition_records"
    __table_args__ = (UniqueConstraint("contract_id", "seq", name="uq_transition_contract_seq"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    contract_id: str = Field(foreign_key="contracts.id", index=True)
    seq: int
    from_state: str
    to_state: str
    at: str  # ISO timestamp
    actor_id: str


# ============================================================================
# PYDANTIC MODELS (API DTOs)
# ============================================================================

# --- Identity ---

class Actor(BaseModel):
    """Authenticated identity, trusted verbatim by the workflow core"""
    id: str
    name: str


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    user: Actor


# --- Blueprints ---

class CreateBlueprintDTO(BaseModel):
    """Request to create a blueprint; fields are validated by the store"""
    name: str
    fields: List[Dict[str, Any]]


class Blueprint(BaseModel):
    id: str
    name: str
    owner_id: str
    fields: List[FieldDefinition]
    created_at: str


# --- Contracts ---

class TransitionRecord(BaseModel):
    """One audit trail entry"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_state: WorkflowState = PydanticField(alias="from")
    to_state: WorkflowState = PydanticField(alias="to")
    at: str
    actor_id: str


class Contract(BaseModel):
    id: str
    name: str
    blueprint_id: Optional[str] = None
    blueprint_name: Optional[str] = None
    owner_id: str
    status: WorkflowState
    fields: List[FieldDefinition]
    status_history: List[TransitionRecord]
    next_states: List[WorkflowState] = []
    created_at: str
    updated_at: str


class InstantiateContractDTO(BaseModel):
    blueprint_id: str
    name: str


class TransitionRequestDTO(BaseModel):
    next_status: str


class UpdateFieldsDTO(BaseModel):
    """Complete field set; replaces the stored one wholesale"""
    fields: List[Dict[str, Any]]
