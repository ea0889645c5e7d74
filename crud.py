"""
Generic per-table CRUD routes.

Every user-owned table is exposed through the same five endpoints: list the
caller's rows, fetch one, create, partially update and delete. Tables with
extra bookkeeping subclass ``Resource`` and override ``create``, ``update``
or ``delete``; the routes commit once per request so those overrides run in
a single transaction. Create and update accept ``?currency=`` for amounts
entered in a display currency; they are stored in the base currency.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import get_current_user
from config import get_settings
from currency import CurrencyConverter
from database import get_db, User

logger = logging.getLogger(__name__)


class Resource:
    def __init__(
        self,
        name,
        model,
        create_schema,
        update_schema,
        read_schema,
        label=None,
        money_fields=("amount",),
    ):
        self.name = name
        self.model = model
        self.create_schema = create_schema
        self.update_schema = update_schema
        self.read_schema = read_schema
        self.label = label or model.__name__
        self.money_fields = money_fields

    def to_base(self, values: dict, currency: Optional[str]) -> dict:
        """Convert amounts entered in ``currency`` to the stored base currency."""
        if not currency:
            return values
        settings = get_settings()
        converter = CurrencyConverter(settings.base_currency, settings.currency_rates)
        for field in self.money_fields:
            if values.get(field) is not None:
                values[field] = converter.to_base(values[field], currency)
        return values

    def get_owned(self, db: Session, user: User, item_id: str):
        row = (
            db.query(self.model)
            .filter(self.model.id == item_id, self.model.user_id == user.id)
            .first()
        )
        if not row:
            raise HTTPException(status_code=404, detail=f"{self.label} not found")
        return row

    def create(self, db: Session, user: User, values: dict):
        row = self.model(user_id=user.id, **values)
        db.add(row)
        return row

    def update(self, db: Session, row, changes: dict):
        for field, value in changes.items():
            setattr(row, field, value)
        return row

    def delete(self, db: Session, row):
        db.delete(row)

    def _commit(self, db: Session):
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning("Rejected conflicting %s write", self.name)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{self.label} conflicts with an existing record",
            )

    def router(self) -> APIRouter:
        resource = self
        create_schema = self.create_schema
        update_schema = self.update_schema
        read_schema = self.read_schema
        router = APIRouter(prefix=f"/{self.name}", tags=[self.name])

        @router.get("", response_model=list[read_schema])
        async def list_items(
            month: Optional[str] = None,
            db: Session = Depends(get_db),
            current_user: User = Depends(get_current_user),
        ):
            query = db.query(resource.model).filter(
                resource.model.user_id == current_user.id
            )
            if month and month != "all" and hasattr(resource.model, "month"):
                query = query.filter(resource.model.month == month)
            return query.all()

        @router.get("/{item_id}", response_model=read_schema)
        async def get_item(
            item_id: str,
            db: Session = Depends(get_db),
            current_user: User = Depends(get_current_user),
        ):
            return resource.get_owned(db, current_user, item_id)

        @router.post("", response_model=read_schema, status_code=status.HTTP_201_CREATED)
        async def create_item(
            payload: create_schema,
            currency: Optional[str] = None,
            db: Session = Depends(get_db),
            current_user: User = Depends(get_current_user),
        ):
            values = resource.to_base(payload.model_dump(), currency)
            row = resource.create(db, current_user, values)
            resource._commit(db)
            db.refresh(row)
            logger.info("Created %s %s for user %s", resource.name, row.id, current_user.id)
            return row

        @router.put("/{item_id}", response_model=read_schema)
        async def update_item(
            item_id: str,
            payload: update_schema,
            currency: Optional[str] = None,
            db: Session = Depends(get_db),
            current_user: User = Depends(get_current_user),
        ):
            row = resource.get_owned(db, current_user, item_id)
            changes = payload.model_dump(exclude_unset=True, exclude_none=True)
            if not changes:
                raise HTTPException(status_code=400, detail="No valid fields to update")
            changes = resource.to_base(changes, currency)
            resource.update(db, row, changes)
            resource._commit(db)
            db.refresh(row)
            logger.info("Updated %s %s (%s)", resource.name, item_id, ", ".join(changes))
            return row

        @router.delete("/{item_id}")
        async def delete_item(
            item_id: str,
            db: Session = Depends(get_db),
            current_user: User = Depends(get_current_user),
        ):
            row = resource.get_owned(db, current_user, item_id)
            resource.delete(db, row)
            resource._commit(db)
            logger.info("Deleted %s %s", resource.name, item_id)
            return {"success": True}

        return router
