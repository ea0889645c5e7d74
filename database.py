import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    create_engine,
    event,
    Column,
    Integer,
    String,
    Float,
    Date,
    DateTime,
    Text,
    ForeignKey,
    Boolean,
    UniqueConstraint,
)
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from config import get_settings

DATABASE_URL = get_settings().database_url


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {}
    kwargs = {"connect_args": {"check_same_thread": False}}
    # In-memory databases live as long as their connection, so share one.
    if url in ("sqlite://", "sqlite+pysqlite://") or ":memory:" in url:
        kwargs["poolclass"] = StaticPool
    return kwargs


engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


if DATABASE_URL.startswith("sqlite"):

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _owner_column():
    return Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class User(Base):
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(50), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_backup_at = Column(DateTime, nullable=True)


class Income(Base):
    __tablename__ = "incomes"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = _owner_column()
    date = Column(Date, nullable=False)
    month = Column(String(7), index=True, nullable=False)
    source = Column(String(100), nullable=False)
    category = Column(String(50), index=True, nullable=False)
    method = Column(String(50), nullable=False)
    amount = Column(Float, nullable=False)
    note = Column(Text, default="")
    saving_id = Column(
        String(36), ForeignKey("savings.id", ondelete="CASCADE"), nullable=True
    )


class Expense(Base):
    __tablename__ = "expenses"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = _owner_column()
    date = Column(Date, nullable=False)
    month = Column(String(7), index=True, nullable=False)
    name = Column(String(100), nullable=False)
    category = Column(String(50), index=True, nullable=False)
    method = Column(String(50), nullable=False)
    amount = Column(Float, nullable=False)
    note = Column(Text, default="")
    bill_payment_id = Column(
        String(36), ForeignKey("bill_payments.id", ondelete="CASCADE"), nullable=True
    )
    saving_id = Column(
        String(36), ForeignKey("savings.id", ondelete="CASCADE"), nullable=True
    )


class Budget(Base):
    __tablename__ = "budgets"
    __table_args__ = (UniqueConstraint("user_id", "month", "category"),)
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = _owner_column()
    month = Column(String(7), index=True, nullable=False)
    category = Column(String(50), nullable=False)
    amount = Column(Float, nullable=False)


class Saving(Base):
    __tablename__ = "savings"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = _owner_column()
    date = Column(Date, nullable=False)
    kind = Column(String(20), nullable=False)
    account_name = Column(String(100), nullable=False)
    deposit = Column(Float, default=0.0, nullable=False)
    withdrawal = Column(Float, default=0.0, nullable=False)
    note = Column(Text, default="")


class MasterData(Base):
    __tablename__ = "master_data"
    __table_args__ = (UniqueConstraint("user_id", "type", "value"),)
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = _owner_column()
    type = Column(String(30), nullable=False)
    value = Column(String(100), nullable=False)


class Bill(Base):
    __tablename__ = "bills"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = _owner_column()
    name = Column(String(100), nullable=False)
    category = Column(String(50), nullable=False)
    amount = Column(Float, nullable=False)
    due_day = Column(Integer, nullable=False)
    start_month = Column(String(7), nullable=False)
    end_month = Column(String(10), default="ongoing", nullable=False)
    note = Column(Text, default="")
    is_active = Column(Boolean, default=True, nullable=False)


class BillPayment(Base):
    __tablename__ = "bill_payments"
    __table_args__ = (UniqueConstraint("bill_id", "month"),)
    id = Column(String(36), primary_key=True, default=new_id)
    bill_id = Column(
        String(36), ForeignKey("bills.id", ondelete="CASCADE"), nullable=False
    )
    user_id = _owner_column()
    month = Column(String(7), index=True, nullable=False)
    paid_at = Column(DateTime, nullable=False)
    amount_paid = Column(Float, nullable=False)


class SavingsTarget(Base):
    __tablename__ = "savings_targets"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = _owner_column()
    name = Column(String(100), nullable=False)
    target_amount = Column(Float, nullable=False)
    start_date = Column(Date, nullable=False)
    target_date = Column(Date, nullable=False)
    linked_account = Column(String(100), nullable=False)


Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
