"""
Mirrored-row bookkeeping.

Savings deposits and withdrawals, and bill payments, each move money in or
out of the running balance. To keep balance figures a plain sum over incomes
and expenses, every such record owns generated rows:

- a saving deposit owns an expense, a withdrawal owns an income, both linked
  through ``saving_id``;
- a bill payment owns an expense linked through ``bill_payment_id``.

Edits drop the generated rows and rebuild them from the updated owner.
Mirrored rows cannot be edited on their own.
"""
import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from analytics import month_of
from crud import Resource
from database import Bill, BillPayment, Expense, Income, Saving, User

logger = logging.getLogger(__name__)

MIRROR_METHOD = "Transfer"


def ensure_not_mirrored(row):
    if getattr(row, "saving_id", None):
        owner = "saving"
    elif getattr(row, "bill_payment_id", None):
        owner = "bill payment"
    else:
        return
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"This record is managed by its linked {owner}",
    )


def clear_saving_mirrors(db: Session, saving_id: str) -> int:
    removed = db.query(Expense).filter(Expense.saving_id == saving_id).delete(
        synchronize_session=False
    )
    removed += db.query(Income).filter(Income.saving_id == saving_id).delete(
        synchronize_session=False
    )
    return removed


def mirror_saving(db: Session, saving: Saving):
    """Create the expense/income rows that represent ``saving``."""
    month = month_of(saving.date)
    if saving.deposit and saving.deposit > 0:
        db.add(
            Expense(
                user_id=saving.user_id,
                date=saving.date,
                month=month,
                name=f"Deposit {saving.kind} - {saving.account_name}",
                category=saving.kind,
                method=MIRROR_METHOD,
                amount=saving.deposit,
                note=saving.note or "",
                saving_id=saving.id,
            )
        )
    if saving.withdrawal and saving.withdrawal > 0:
        db.add(
            Income(
                user_id=saving.user_id,
                date=saving.date,
                month=month,
                source=f"Withdrawal {saving.kind} - {saving.account_name}",
                category=saving.kind,
                method=MIRROR_METHOD,
                amount=saving.withdrawal,
                note=saving.note or "",
                saving_id=saving.id,
            )
        )


def create_saving(db: Session, user_id: str, values: dict) -> Saving:
    saving = Saving(user_id=user_id, **values)
    db.add(saving)
    db.flush()
    mirror_saving(db, saving)
    logger.info("Mirrored saving %s for user %s", saving.id, user_id)
    return saving


def _bill_expense_fields(payment: BillPayment) -> dict:
    return {
        "date": payment.paid_at.date(),
        # Billing month, not the month of paid_at.
        "month": payment.month,
        "amount": payment.amount_paid,
    }


def create_bill_payment(db: Session, user_id: str, values: dict) -> BillPayment:
    bill = (
        db.query(Bill)
        .filter(Bill.id == values["bill_id"], Bill.user_id == user_id)
        .first()
    )
    if not bill:
        raise HTTPException(status_code=404, detail="Bill not found")

    existing = (
        db.query(BillPayment)
        .filter(BillPayment.bill_id == bill.id, BillPayment.month == values["month"])
        .first()
    )
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Bill already paid for {values['month']}",
        )

    payment = BillPayment(user_id=user_id, **values)
    db.add(payment)
    db.flush()
    db.add(
        Expense(
            user_id=user_id,
            name=f"Bill: {bill.name}",
            category=bill.category,
            method=MIRROR_METHOD,
            note=f"Payment for bill {bill.name}",
            bill_payment_id=payment.id,
            **_bill_expense_fields(payment),
        )
    )
    logger.info("Recorded payment of bill %s for %s", bill.id, payment.month)
    return payment


class TransactionResource(Resource):
    """Incomes and expenses: month follows date, mirrored rows are read-only."""

    def create(self, db: Session, user: User, values: dict):
        values["month"] = month_of(values["date"])
        return super().create(db, user, values)

    def update(self, db: Session, row, changes: dict):
        ensure_not_mirrored(row)
        if "date" in changes:
            changes["month"] = month_of(changes["date"])
        return super().update(db, row, changes)

    def delete(self, db: Session, row):
        ensure_not_mirrored(row)
        super().delete(db, row)


class SavingResource(Resource):
    def create(self, db: Session, user: User, values: dict):
        return create_saving(db, user.id, values)

    def update(self, db: Session, row, changes: dict):
        removed = clear_saving_mirrors(db, row.id)
        super().update(db, row, changes)
        mirror_saving(db, row)
        logger.info("Rebuilt mirrors of saving %s (%d removed)", row.id, removed)
        return row

    def delete(self, db: Session, row):
        clear_saving_mirrors(db, row.id)
        super().delete(db, row)


class BillResource(Resource):
    def update(self, db: Session, row, changes: dict):
        start = changes.get("start_month", row.start_month)
        end = changes.get("end_month", row.end_month)
        if end != "ongoing" and end < start:
            raise HTTPException(
                status_code=400, detail="end_month must not be before start_month"
            )
        return super().update(db, row, changes)

    def delete(self, db: Session, row):
        payment_ids = [
            payment_id
            for (payment_id,) in db.query(BillPayment.id).filter(
                BillPayment.bill_id == row.id
            )
        ]
        if payment_ids:
            db.query(Expense).filter(Expense.bill_payment_id.in_(payment_ids)).delete(
                synchronize_session=False
            )
            db.query(BillPayment).filter(BillPayment.id.in_(payment_ids)).delete(
                synchronize_session=False
            )
        super().delete(db, row)


class BillPaymentResource(Resource):
    def create(self, db: Session, user: User, values: dict):
        return create_bill_payment(db, user.id, values)

    def update(self, db: Session, row, changes: dict):
        if "month" in changes and changes["month"] != row.month:
            clash = (
                db.query(BillPayment)
                .filter(
                    BillPayment.bill_id == row.bill_id,
                    BillPayment.month == changes["month"],
                    BillPayment.id != row.id,
                )
                .first()
            )
            if clash:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Bill already paid for {changes['month']}",
                )
        super().update(db, row, changes)
        expense = db.query(Expense).filter(Expense.bill_payment_id == row.id).first()
        if expense is not None:
            for field, value in _bill_expense_fields(row).items():
                setattr(expense, field, value)
        return row

    def delete(self, db: Session, row):
        db.query(Expense).filter(Expense.bill_payment_id == row.id).delete(
            synchronize_session=False
        )
        super().delete(db, row)
