"""
Whole-account backup and restore.

The export is a versioned JSON document of every row the user owns. Import
replaces the user's data with the document's in a single transaction;
mirrored incomes and expenses are not copied but regenerated from the
savings and bill payments they belong to.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from analytics import month_of
from auth import get_current_user, seed_master_data
from config import get_settings
from database import (
    get_db,
    utcnow,
    Bill,
    BillPayment,
    Budget,
    Expense,
    Income,
    MasterData,
    Saving,
    SavingsTarget,
    User,
)
from ledger import create_bill_payment, create_saving
from schemas import (
    BackupDocument,
    BackupStatus,
    BillPaymentRead,
    BillRead,
    BudgetRead,
    ExpenseRead,
    IncomeRead,
    MasterDataRead,
    SavingRead,
    SavingsTargetRead,
)

logger = logging.getLogger(__name__)

BACKUP_VERSION = 2

backup_router = APIRouter()

# Children before parents, so foreign keys never dangle mid-delete.
_DELETE_ORDER = (Income, Expense, BillPayment, Bill, Saving, Budget, MasterData, SavingsTarget)


def _dump(db: Session, model, schema, user_id: str) -> list:
    rows = db.query(model).filter(model.user_id == user_id).all()
    return [schema.model_validate(row).model_dump(mode="json") for row in rows]


def export_user_data(db: Session, user: User) -> dict:
    return {
        "version": BACKUP_VERSION,
        "export_date": utcnow().isoformat(),
        "incomes": _dump(db, Income, IncomeRead, user.id),
        "expenses": _dump(db, Expense, ExpenseRead, user.id),
        "budgets": _dump(db, Budget, BudgetRead, user.id),
        "savings": _dump(db, Saving, SavingRead, user.id),
        "master_data": _dump(db, MasterData, MasterDataRead, user.id),
        "bills": _dump(db, Bill, BillRead, user.id),
        "bill_payments": _dump(db, BillPayment, BillPaymentRead, user.id),
        "savings_targets": _dump(db, SavingsTarget, SavingsTargetRead, user.id),
    }


def clear_user_data(db: Session, user_id: str):
    for model in _DELETE_ORDER:
        db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)


def import_user_data(db: Session, user: User, document: BackupDocument) -> dict:
    """Replace everything ``user`` owns with the contents of ``document``."""
    if document.version != BACKUP_VERSION:
        raise HTTPException(
            status_code=400, detail=f"Unsupported backup version {document.version}"
        )

    clear_user_data(db, user.id)
    counts = dict.fromkeys(
        ("incomes", "expenses", "budgets", "savings", "master_data", "bills",
         "bill_payments", "savings_targets"),
        0,
    )

    for item in document.incomes:
        if item.saving_id:
            continue
        db.add(
            Income(
                user_id=user.id,
                date=item.date,
                month=month_of(item.date),
                source=item.source,
                category=item.category,
                method=item.method,
                amount=item.amount,
                note=item.note,
            )
        )
        counts["incomes"] += 1

    for item in document.expenses:
        if item.saving_id or item.bill_payment_id:
            continue
        db.add(
            Expense(
                user_id=user.id,
                date=item.date,
                month=month_of(item.date),
                name=item.name,
                category=item.category,
                method=item.method,
                amount=item.amount,
                note=item.note,
            )
        )
        counts["expenses"] += 1

    for item in document.budgets:
        db.add(Budget(user_id=user.id, **item.model_dump(include={"month", "category", "amount"})))
        counts["budgets"] += 1

    for item in document.savings:
        create_saving(
            db,
            user.id,
            item.model_dump(
                include={"date", "kind", "account_name", "deposit", "withdrawal", "note"}
            ),
        )
        counts["savings"] += 1

    if document.master_data:
        for item in document.master_data:
            db.add(MasterData(user_id=user.id, type=item.type, value=item.value))
            counts["master_data"] += 1
    else:
        seed_master_data(db, user.id)

    bill_ids = {}
    for item in document.bills:
        bill = Bill(
            user_id=user.id,
            **item.model_dump(exclude={"id", "user_id"}),
        )
        db.add(bill)
        db.flush()
        bill_ids[item.id] = bill.id
        counts["bills"] += 1

    for item in document.bill_payments:
        new_bill_id = bill_ids.get(item.bill_id)
        if new_bill_id is None:
            logger.warning("Skipping payment %s of unknown bill %s", item.id, item.bill_id)
            continue
        create_bill_payment(
            db,
            user.id,
            {
                "bill_id": new_bill_id,
                "month": item.month,
                "paid_at": item.paid_at,
                "amount_paid": item.amount_paid,
            },
        )
        counts["bill_payments"] += 1

    for item in document.savings_targets:
        db.add(SavingsTarget(user_id=user.id, **item.model_dump(exclude={"id", "user_id"})))
        counts["savings_targets"] += 1

    return counts


def reminder_due(
    last_backup_at: Optional[datetime], interval_days: int, now: Optional[datetime] = None
) -> bool:
    if last_backup_at is None:
        return True
    return (now or utcnow()) - last_backup_at > timedelta(days=interval_days)


@backup_router.get("/backup")
async def export_backup(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    document = export_user_data(db, current_user)
    current_user.last_backup_at = utcnow()
    db.commit()
    logger.info("Exported backup for user %s", current_user.id)
    return document


@backup_router.post("/backup")
async def import_backup(
    document: BackupDocument,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user_id = current_user.id
    try:
        counts = import_user_data(db, current_user, document)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Backup import for user %s hit conflicting records", user_id)
        raise HTTPException(status_code=400, detail="Backup contains conflicting records")
    except HTTPException:
        db.rollback()
        logger.warning("Backup import rejected for user %s", user_id)
        raise
    logger.info("Imported backup for user %s: %s", user_id, counts)
    return {"success": True, "imported": counts}


@backup_router.get("/backup/status", response_model=BackupStatus)
async def backup_status(current_user: User = Depends(get_current_user)):
    interval = get_settings().backup_reminder_days
    return {
        "last_backup_at": current_user.last_backup_at,
        "reminder_due": reminder_due(current_user.last_backup_at, interval),
        "reminder_interval_days": interval,
    }
