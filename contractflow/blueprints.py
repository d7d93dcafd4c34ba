"""
Blueprint Store
Handles all database operations for blueprints (the Template Store).
"""

import logging
from typing import Any, Iterable, List

from sqlalchemy import Engine
from sqlmodel import Session, col, select

from .access import ensure_owner, require_actor
from .errors import NotFoundError, ValidationError
from .fields import dump_fields, load_fields, parse_fields
from .models import Actor, Blueprint, BlueprintTable
from .util.clock import Clock, iso, utcnow
from .util.ids import new_id

logger = logging.getLogger(__name__)


class BlueprintStore:
    """Repository for blueprint CRUD operations"""

    def __init__(self, engine: Engine, clock: Clock = utcnow):
        self.engine = engine
        self.clock = clock

    def create_blueprint(self, name: str, fields: Iterable[Any], owner: Actor) -> Blueprint:
        """
        Validate and store a new blueprint owned by `owner`.

        Raises:
            ValidationError: blank name, no fields, or any invalid field
                (missing label, unknown kind, value not matching its kind).
        """
        owner = require_actor(owner)
        if not name or not name.strip():
            raise ValidationError("Blueprint name is required", [{"path": "name", "msg": "must not be blank"}])

        raw_fields = list(fields or [])
        if not raw_fields:
            raise ValidationError("Blueprint needs at least one field", [{"path": "fields", "msg": "must not be empty"}])

        parsed = parse_fields(raw_fields)

        record = BlueprintTable(
            id=new_id("bp_"),
            name=name.strip(),
            owner_id=owner.id,
            fields=dump_fields(parsed),
            created_at=iso(self.clock()),
        )
        with Session(self.engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            logger.info("Blueprint %s created by %s with %d fields", record.id, owner.id, len(parsed))
            return self._to_dto(record)

    def list_blueprints(self, owner: Actor) -> List[Blueprint]:
        """Blueprints owned by `owner`, most recent first"""
        owner = require_actor(owner)
        with Session(self.engine) as session:
            records = session.exec(
                select(BlueprintTable)
                .where(BlueprintTable.owner_id == owner.id)
                .order_by(col(BlueprintTable.created_at).desc(), col(BlueprintTable.id).desc())
            ).all()
            return [self._to_dto(r) for r in records]

    def delete_blueprint(self, blueprint_id: str, owner: Actor) -> None:
        """
        Delete a blueprint owned by `owner`.
        Contracts instantiated from it keep their own copy of the fields.
        """
        owner = require_actor(owner)
        with Session(self.engine) as session:
            record = session.get(BlueprintTable, blueprint_id)
            ensure_owner(record, record.owner_id if record else "", owner, "Blueprint")
            session.delete(record)
            session.commit()
            logger.info("Blueprint %s deleted by %s", blueprint_id, owner.id)

    def get(self, blueprint_id: str) -> Blueprint:
        """
        Template Store lookup used by contract instantiation.
        Not owner-scoped: any authenticated user may instantiate a blueprint
        they can reference.
        """
        with Session(self.engine) as session:
            record = session.get(BlueprintTable, blueprint_id)
            if record is None:
                raise NotFoundError("Blueprint not found")
            return self._to_dto(record)

    @staticmethod
    def _to_dto(record: BlueprintTable) -> Blueprint:
        return Blueprint(
            id=record.id,
            name=record.name,
            owner_id=record.owner_id,
            fields=load_fields(record.fields),
            created_at=record.created_at,
        )
