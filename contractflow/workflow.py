"""
Contract Workflow Engine
State machine for contract status, field edits and the audit trail.

Legal transitions live in TRANSITIONS and are checked once per call.
Writes to a contract go through an optimistic-concurrency guard: the row's
`version` is compared on UPDATE, and a lost race re-runs the whole
read-validate-write cycle against fresh state.
"""

import logging
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from sqlalchemy import Engine, func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from .access import ensure_owner, require_actor
from .blueprints import BlueprintStore
from .config import settings
from .errors import (
    ConcurrencyConflictError,
    IllegalTransitionError,
    ImmutableContractError,
    ValidationError,
)
from .fields import blank_copy, dump_fields, kind_map, load_fields, parse_fields
from .models import (
    Actor,
    BlueprintTable,
    Contract,
    ContractTable,
    TransitionRecord,
    TransitionRecordTable,
    WorkflowState,
)
from .observers import ContractEvent, EventPublisher
from .util.clock import Clock, iso, utcnow
from .util.ids import new_id

logger = logging.getLogger(__name__)


TRANSITIONS: Dict[WorkflowState, FrozenSet[WorkflowState]] = {
    WorkflowState.created: frozenset({WorkflowState.approved, WorkflowState.revoked}),
    WorkflowState.approved: frozenset({WorkflowState.sent}),
    WorkflowState.sent: frozenset({WorkflowState.signed, WorkflowState.revoked}),
    WorkflowState.signed: frozenset({WorkflowState.locked}),
    WorkflowState.locked: frozenset(),
    WorkflowState.revoked: frozenset(),
}

TERMINAL_STATES: FrozenSet[WorkflowState] = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Field values are frozen once a contract reaches one of these
IMMUTABLE_STATES: FrozenSet[WorkflowState] = frozenset({WorkflowState.locked, WorkflowState.revoked})


def coerce_state(value: Union[WorkflowState, str]) -> WorkflowState:
    """Parse a state name ("APPROVED", "approved") into a WorkflowState"""
    if isinstance(value, WorkflowState):
        return value
    try:
        return WorkflowState(str(value).strip().upper())
    except ValueError:
        raise ValidationError(
            f"Unknown workflow state: {value}",
            [{"path": "next_status", "msg": f"must be one of {[s.value for s in WorkflowState]}"}],
        ) from None


def allowed_transitions(state: WorkflowState) -> List[WorkflowState]:
    """Outgoing edges of `state`, in declaration order"""
    targets = TRANSITIONS[state]
    return [s for s in WorkflowState if s in targets]


def check_transition(current: WorkflowState, requested: WorkflowState) -> None:
    if requested not in TRANSITIONS[current]:
        raise IllegalTransitionError(current.value, requested.value)


# (column changes, audit rows) produced by a guarded write
WritePlan = Tuple[Dict[str, Any], List[TransitionRecordTable]]


class WorkflowEngine:
    """Owns every mutation of a contract after instantiation"""

    def __init__(
        self,
        engine: Engine,
        templates: BlueprintStore,
        publisher: Optional[EventPublisher] = None,
        clock: Clock = utcnow,
        max_retries: Optional[int] = None,
        carry_over_defaults: Optional[bool] = None,
        strict_field_schema: Optional[bool] = None,
    ):
        self.engine = engine
        self.templates = templates
        self.publisher = publisher or EventPublisher()
        self.clock = clock
        self.max_retries = max_retries if max_retries is not None else settings.max_write_retries
        self.carry_over_defaults = (
            carry_over_defaults if carry_over_defaults is not None else settings.carry_over_blueprint_defaults
        )
        self.strict_field_schema = (
            strict_field_schema if strict_field_schema is not None else settings.strict_field_schema
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def instantiate(self, blueprint_id: str, name: str, owner: Actor) -> Contract:
        """
        Create a contract from a blueprint.

        The blueprint's fields are copied (values reset to empty unless
        carry-over is configured); the contract starts in CREATED with an
        empty audit trail and is owned by `owner`.

        Raises:
            NotFoundError: the blueprint does not exist.
            ValidationError: blank contract name.
        """
        owner = require_actor(owner)
        if not name or not name.strip():
            raise ValidationError("Contract name is required", [{"path": "name", "msg": "must not be blank"}])

        blueprint = self.templates.get(blueprint_id)
        fields = blank_copy(blueprint.fields, carry_over_defaults=self.carry_over_defaults)
        now = iso(self.clock())

        record = ContractTable(
            id=new_id("ct_"),
            name=name.strip(),
            blueprint_id=blueprint.id,
            owner_id=owner.id,
            status=WorkflowState.created.value,
            fields=dump_fields(fields),
            version=1,
            created_at=now,
            updated_at=now,
        )
        with Session(self.engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            contract = self._to_dto(record, [], blueprint.name)

        logger.info("Contract %s instantiated from blueprint %s by %s", contract.id, blueprint.id, owner.id)
        self.publisher.publish(
            ContractEvent("instantiated", contract.id, owner.id, now, {"blueprint_id": blueprint.id})
        )
        return contract

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def transition(self, contract_id: str, requested_state: Union[WorkflowState, str], actor: Actor) -> Contract:
        """
        Move a contract along one edge of the transition table.

        The status change and its audit record are committed together;
        an illegal edge writes nothing.

        Raises:
            NotFoundError: missing contract or not owned by `actor`.
            IllegalTransitionError: edge absent from TRANSITIONS.
            ValidationError: `requested_state` is not a workflow state.
        """
        actor = require_actor(actor)
        moved: Dict[str, WorkflowState] = {}

        def plan(session: Session, record: ContractTable, now: str) -> WritePlan:
            current = WorkflowState(record.status)
            requested = coerce_state(requested_state)
            check_transition(current, requested)

            seq = session.exec(
                select(func.count())
                .select_from(TransitionRecordTable)
                .where(TransitionRecordTable.contract_id == record.id)
            ).one()
            audit = TransitionRecordTable(
                contract_id=record.id,
                seq=seq + 1,
                from_state=current.value,
                to_state=requested.value,
                at=now,
                actor_id=actor.id,
            )
            moved.update({"from": current, "to": requested})
            return {"status": requested.value}, [audit]

        contract, now = self._guarded_write(contract_id, actor, plan)

        logger.info(
            "Contract %s moved %s -> %s by %s", contract_id, moved["from"].value, moved["to"].value, actor.id
        )
        self.publisher.publish(
            ContractEvent(
                "transitioned", contract_id, actor.id, now,
                {"from": moved["from"].value, "to": moved["to"].value},
            )
        )
        return contract

    def update_fields(self, contract_id: str, new_fields: Iterable[Any], actor: Actor) -> Contract:
        """
        Replace a contract's fields wholesale (last write wins).

        With strict field schema enabled the submitted id/kind pairs must
        match the stored ones exactly, so a field can neither change type nor
        appear or disappear.

        Raises:
            NotFoundError: missing contract or not owned by `actor`.
            ImmutableContractError: contract is LOCKED or REVOKED.
            ValidationError: malformed fields or a schema mismatch.
        """
        actor = require_actor(actor)
        submitted = list(new_fields or [])

        def plan(session: Session, record: ContractTable, now: str) -> WritePlan:
            status = WorkflowState(record.status)
            if status in IMMUTABLE_STATES:
                raise ImmutableContractError(status.value)

            parsed = parse_fields(submitted)
            if self.strict_field_schema:
                self._check_schema(load_fields(record.fields), parsed)
            return {"fields": dump_fields(parsed)}, []

        contract, now = self._guarded_write(contract_id, actor, plan)

        logger.info("Contract %s fields replaced by %s", contract_id, actor.id)
        self.publisher.publish(
            ContractEvent("fields_updated", contract_id, actor.id, now, {"count": len(contract.fields)})
        )
        return contract

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_contract(self, contract_id: str, actor: Actor) -> Contract:
        actor = require_actor(actor)
        with Session(self.engine) as session:
            record = self._load_owned(session, contract_id, actor)
            history = self._history_rows(session, [record.id]).get(record.id, [])
            names = self._blueprint_names(session, [record.blueprint_id])
            return self._to_dto(record, history, names.get(record.blueprint_id or ""))

    def list_contracts(self, actor: Actor, status: Optional[Union[WorkflowState, str]] = None) -> List[Contract]:
        """Contracts owned by `actor`, most recent first, optionally filtered by status"""
        actor = require_actor(actor)
        query = select(ContractTable).where(ContractTable.owner_id == actor.id)
        if status is not None:
            query = query.where(ContractTable.status == coerce_state(status).value)
        query = query.order_by(col(ContractTable.created_at).desc(), col(ContractTable.id).desc())

        with Session(self.engine) as session:
            records = session.exec(query).all()
            histories = self._history_rows(session, [r.id for r in records])
            names = self._blueprint_names(session, [r.blueprint_id for r in records])
            return [
                self._to_dto(r, histories.get(r.id, []), names.get(r.blueprint_id or ""))
                for r in records
            ]

    def history(self, contract_id: str, actor: Actor) -> List[TransitionRecord]:
        """Audit trail of a contract, oldest first"""
        actor = require_actor(actor)
        with Session(self.engine) as session:
            record = self._load_owned(session, contract_id, actor)
            rows = self._history_rows(session, [record.id]).get(record.id, [])
            return [self._record_dto(r) for r in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _guarded_write(
        self,
        contract_id: str,
        actor: Actor,
        plan: Callable[[Session, ContractTable, str], WritePlan],
    ) -> Tuple[Contract, str]:
        """
        Load, validate and persist as one unit.

        `plan` raises to abort (nothing is written) or returns the column
        changes and audit rows to commit. The UPDATE only applies if the
        row's version is still the one that was loaded; otherwise the
        transaction is rolled back and the cycle restarts.
        """
        for attempt in range(1, self.max_retries + 1):
            with Session(self.engine) as session:
                record = self._load_owned(session, contract_id, actor)
                loaded_version = record.version
                now = iso(self.clock())
                changes, audit_rows = plan(session, record, now)

                result = session.exec(
                    update(ContractTable)
                    .where(col(ContractTable.id) == contract_id)
                    .where(col(ContractTable.version) == loaded_version)
                    .values(**changes, version=loaded_version + 1, updated_at=now)
                )
                if result.rowcount != 1:
                    session.rollback()
                    logger.warning(
                        "Stale write on contract %s (version %d), attempt %d/%d",
                        contract_id, loaded_version, attempt, self.max_retries,
                    )
                    continue

                for row in audit_rows:
                    session.add(row)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.warning(
                        "Audit sequence clash on contract %s, attempt %d/%d",
                        contract_id, attempt, self.max_retries,
                    )
                    continue

                fresh = session.get(ContractTable, contract_id)
                history = self._history_rows(session, [contract_id]).get(contract_id, [])
                names = self._blueprint_names(session, [fresh.blueprint_id])
                return self._to_dto(fresh, history, names.get(fresh.blueprint_id or "")), now

        raise ConcurrencyConflictError(
            f"Contract {contract_id} was modified concurrently, retry the request"
        )

    @staticmethod
    def _load_owned(session: Session, contract_id: str, actor: Actor) -> ContractTable:
        record = session.get(ContractTable, contract_id)
        ensure_owner(record, record.owner_id if record else "", actor, "Contract")
        return record

    @staticmethod
    def _history_rows(session: Session, contract_ids: List[str]) -> Dict[str, List[TransitionRecordTable]]:
        if not contract_ids:
            return {}
        rows = session.exec(
            select(TransitionRecordTable)
            .where(col(TransitionRecordTable.contract_id).in_(contract_ids))
            .order_by(col(TransitionRecordTable.contract_id), col(TransitionRecordTable.seq))
        ).all()
        grouped: Dict[str, List[TransitionRecordTable]] = {}
        for row in rows:
            grouped.setdefault(row.contract_id, []).append(row)
        return grouped

    @staticmethod
    def _blueprint_names(session: Session, blueprint_ids: List[Optional[str]]) -> Dict[str, str]:
        """Display names of referenced blueprints that still exist"""
        ids = {i for i in blueprint_ids if i}
        if not ids:
            return {}
        rows = session.exec(
            select(BlueprintTable.id, BlueprintTable.name).where(col(BlueprintTable.id).in_(ids))
        ).all()
        return {row[0]: row[1] for row in rows}

    @staticmethod
    def _check_schema(stored: List[Any], submitted: List[Any]) -> None:
        expected = kind_map(stored)
        actual = kind_map(submitted)
        details = []
        for field_id, kind in expected.items():
            if field_id not in actual:
                details.append({"path": f"fields.{field_id}", "msg": "field is missing"})
            elif actual[field_id] != kind:
                details.append(
                    {"path": f"fields.{field_id}.kind", "msg": f"kind cannot change from {kind} to {actual[field_id]}"}
                )
        for field_id in actual:
            if field_id not in expected:
                details.append({"path": f"fields.{field_id}", "msg": "unknown field"})
        if details:
            raise ValidationError("Submitted fields do not match the contract", details)

    @staticmethod
    def _record_dto(row: TransitionRecordTable) -> TransitionRecord:
        return TransitionRecord(
            from_state=WorkflowState(row.from_state),
            to_state=WorkflowState(row.to_state),
            at=row.at,
            actor_id=row.actor_id,
        )

    def _to_dto(
        self,
        record: ContractTable,
        history: List[TransitionRecordTable],
        blueprint_name: Optional[str],
    ) -> Contract:
        status = WorkflowState(record.status)
        return Contract(
            id=record.id,
            name=record.name,
            blueprint_id=record.blueprint_id,
            blueprint_name=blueprint_name,
            owner_id=record.owner_id,
            status=status,
            fields=load_fields(record.fields),
            status_history=[self._record_dto(r) for r in history],
            next_states=allowed_transitions(status),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
