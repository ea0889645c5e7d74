import datetime as dt
import math
import re
from datetime import timezone
from enum import Enum
from typing import Annotated, Dict, List, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    confloat,
    conint,
    constr,
    field_validator,
    model_validator,
)

from currency import parse_number_input

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
ONGOING = "ongoing"


# Amounts typed as text ("1.234.567", "1.234,56") are parsed before range checks.
def _parse_amount(value):
    if isinstance(value, str):
        parsed = parse_number_input(value)
        if not math.isnan(parsed):
            return parsed
    return value


Month = constr(pattern=MONTH_PATTERN)
Amount = Annotated[confloat(gt=0), BeforeValidator(_parse_amount)]
NonNegativeAmount = Annotated[confloat(ge=0), BeforeValidator(_parse_amount)]


class SavingKind(str, Enum):
    SAVINGS = "Savings"
    INVESTMENT = "Investment"


class MasterDataType(str, Enum):
    INCOME_CATEGORY = "income_category"
    EXPENSE_CATEGORY = "expense_category"
    PAYMENT_METHOD = "payment_method"


def _normalize_paid_at(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None:
        return value
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0)


def _check_end_month(value: Optional[str]) -> Optional[str]:
    if value is None or value == ONGOING or re.match(MONTH_PATTERN, value):
        return value
    raise ValueError(f"end_month must be YYYY-MM or '{ONGOING}'")


# Users


class UserBase(BaseModel):
    username: constr(min_length=3, max_length=50)


class UserCreate(UserBase):
    password: constr(min_length=1)


class UserLogin(UserBase):
    password: str


class UserRead(UserBase):
    id: str
    created_at: dt.datetime
    last_backup_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# Incomes


class IncomeCreate(BaseModel):
    date: dt.date
    source: constr(min_length=1, max_length=100)
    category: constr(min_length=1, max_length=50)
    method: constr(min_length=1, max_length=50)
    amount: Amount
    note: str = ""


class IncomeUpdate(BaseModel):
    date: Optional[dt.date] = None
    source: Optional[constr(min_length=1, max_length=100)] = None
    category: Optional[constr(min_length=1, max_length=50)] = None
    method: Optional[constr(min_length=1, max_length=50)] = None
    amount: Optional[Amount] = None
    note: Optional[str] = None


class IncomeRead(IncomeCreate):
    id: str
    user_id: str
    month: str
    saving_id: Optional[str] = None

    class Config:
        from_attributes = True


# Expenses


class ExpenseCreate(BaseModel):
    date: dt.date
    name: constr(min_length=1, max_length=100)
    category: constr(min_length=1, max_length=50)
    method: constr(min_length=1, max_length=50)
    amount: Amount
    note: str = ""


class ExpenseUpdate(BaseModel):
    date: Optional[dt.date] = None
    name: Optional[constr(min_length=1, max_length=100)] = None
    category: Optional[constr(min_length=1, max_length=50)] = None
    method: Optional[constr(min_length=1, max_length=50)] = None
    amount: Optional[Amount] = None
    note: Optional[str] = None


class ExpenseRead(ExpenseCreate):
    id: str
    user_id: str
    month: str
    bill_payment_id: Optional[str] = None
    saving_id: Optional[str] = None

    class Config:
        from_attributes = True


# Budgets


class BudgetCreate(BaseModel):
    month: Month
    category: constr(min_length=1, max_length=50)
    amount: Amount


class BudgetUpdate(BaseModel):
    month: Optional[Month] = None
    category: Optional[constr(min_length=1, max_length=50)] = None
    amount: Optional[Amount] = None


class BudgetRead(BudgetCreate):
    id: str
    user_id: str

    class Config:
        from_attributes = True


# Savings


class SavingCreate(BaseModel):
    date: dt.date
    kind: SavingKind
    account_name: constr(min_length=1, max_length=100)
    deposit: NonNegativeAmount = 0.0
    withdrawal: NonNegativeAmount = 0.0
    note: str = ""

    class Config:
        use_enum_values = True


class SavingUpdate(BaseModel):
    date: Optional[dt.date] = None
    kind: Optional[SavingKind] = None
    account_name: Optional[constr(min_length=1, max_length=100)] = None
    deposit: Optional[NonNegativeAmount] = None
    withdrawal: Optional[NonNegativeAmount] = None
    note: Optional[str] = None

    class Config:
        use_enum_values = True


class SavingRead(SavingCreate):
    id: str
    user_id: str

    class Config:
        from_attributes = True
        use_enum_values = True


# Master data


class MasterDataCreate(BaseModel):
    type: MasterDataType
    value: constr(min_length=1, max_length=100)

    class Config:
        use_enum_values = True


class MasterDataUpdate(BaseModel):
    type: Optional[MasterDataType] = None
    value: Optional[constr(min_length=1, max_length=100)] = None

    class Config:
        use_enum_values = True


class MasterDataRead(MasterDataCreate):
    id: str
    user_id: str

    class Config:
        from_attributes = True
        use_enum_values = True


# Bills


class BillCreate(BaseModel):
    name: constr(min_length=1, max_length=100)
    category: constr(min_length=1, max_length=50)
    amount: Amount
    due_day: conint(ge=1, le=31)
    start_month: Month
    end_month: str = ONGOING
    note: str = ""
    is_active: bool = True

    @field_validator("end_month")
    @classmethod
    def valid_end_month(cls, value):
        return _check_end_month(value)

    @model_validator(mode="after")
    def end_not_before_start(self):
        if self.end_month != ONGOING and self.end_month < self.start_month:
            raise ValueError("end_month must not be before start_month")
        return self


class BillUpdate(BaseModel):
    name: Optional[constr(min_length=1, max_length=100)] = None
    category: Optional[constr(min_length=1, max_length=50)] = None
    amount: Optional[Amount] = None
    due_day: Optional[conint(ge=1, le=31)] = None
    start_month: Optional[Month] = None
    end_month: Optional[str] = None
    note: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("end_month")
    @classmethod
    def valid_end_month(cls, value):
        return _check_end_month(value)


class BillRead(BaseModel):
    id: str
    user_id: str
    name: str
    category: str
    amount: float
    due_day: int
    start_month: str
    end_month: str
    note: Optional[str] = ""
    is_active: bool

    class Config:
        from_attributes = True


# Bill payments


class BillPaymentCreate(BaseModel):
    bill_id: str
    month: Month
    paid_at: dt.datetime
    amount_paid: Amount

    @field_validator("paid_at")
    @classmethod
    def naive_utc_paid_at(cls, value):
        return _normalize_paid_at(value)


class BillPaymentUpdate(BaseModel):
    month: Optional[Month] = None
    paid_at: Optional[dt.datetime] = None
    amount_paid: Optional[Amount] = None

    @field_validator("paid_at")
    @classmethod
    def naive_utc_paid_at(cls, value):
        return _normalize_paid_at(value)


class BillPaymentRead(BillPaymentCreate):
    id: str
    user_id: str

    class Config:
        from_attributes = True


# Savings targets


class SavingsTargetCreate(BaseModel):
    name: constr(min_length=1, max_length=100)
    target_amount: Amount
    start_date: dt.date
    target_date: dt.date
    linked_account: constr(min_length=1, max_length=100)


class SavingsTargetUpdate(BaseModel):
    name: Optional[constr(min_length=1, max_length=100)] = None
    target_amount: Optional[Amount] = None
    start_date: Optional[dt.date] = None
    target_date: Optional[dt.date] = None
    linked_account: Optional[constr(min_length=1, max_length=100)] = None


class SavingsTargetRead(SavingsTargetCreate):
    id: str
    user_id: str

    class Config:
        from_attributes = True


# Analytics


class CategoryTrend(BaseModel):
    category: str
    month: str
    total: float

    class Config:
        from_attributes = True


class CategoryShare(BaseModel):
    category: str
    total: float
    percentage: float
    count: int


class MonthlyTotals(BaseModel):
    month: str
    income: float
    expense: float


class Summary(BaseModel):
    month: str
    currency: str
    total_income: float
    total_expense: float
    net: float
    running_balance: float
    total_savings: float
    savings_by_kind: Dict[str, float]
    monthly_trend: List[MonthlyTotals]
    expense_categories: List[CategoryShare]


class Insight(BaseModel):
    code: str
    category: Optional[str] = None
    categories: List[str] = []
    percent: Optional[float] = None
    count: Optional[int] = None


class ExpenseInsights(BaseModel):
    month: str
    total_expense: float
    categories: List[CategoryShare]
    top_category: Optional[CategoryShare] = None
    top_three: List[CategoryShare]
    insights: List[Insight]


class HeatmapTransaction(BaseModel):
    id: str
    name: str
    category: str
    amount: float


class HeatmapDay(BaseModel):
    date: dt.date
    day: int
    total: float
    transactions: List[HeatmapTransaction]
    intensity: str


class DayTotal(BaseModel):
    date: dt.date
    total: float


class HeatmapInsights(BaseModel):
    most_expensive_day: Optional[DayTotal] = None
    zero_expense_days: int
    average_daily: float
    total_expense: float
    active_days: int


class Heatmap(BaseModel):
    month: str
    month_name: str
    days_in_month: int
    first_day_offset: int
    days: List[HeatmapDay]
    insights: HeatmapInsights


class HealthBreakdown(BaseModel):
    saving_ratio: int
    budget_discipline: int
    spending_stability: int
    consistency: int


class HealthScore(BaseModel):
    month: str
    total_score: int
    status: str
    breakdown: HealthBreakdown
    recommendations: List[str]
    saving_ratio_percent: float
    over_budget_categories: List[str]
    spending_change: float
    active_days_percent: float


class BudgetUsage(BaseModel):
    id: str
    category: str
    budget: float
    spent: float
    remaining: float
    percentage: float
    over_budget: bool


class AccountBalance(BaseModel):
    account_name: str
    kind: str
    deposit: float
    withdrawal: float
    balance: float


class PaymentInfo(BaseModel):
    id: str
    month: str
    paid_at: dt.datetime
    amount_paid: float


class BillStatus(BaseModel):
    id: str
    name: str
    category: str
    amount: float
    due_day: int
    is_paid: bool
    is_overdue: bool
    payment: Optional[PaymentInfo] = None


class BillStats(BaseModel):
    total: int
    paid: int
    unpaid: int
    overdue: int
    total_amount: float
    paid_amount: float


class BillOverview(BaseModel):
    month: str
    bills: List[BillStatus]
    stats: BillStats


class Milestone(BaseModel):
    percentage: int
    reached: bool


class TargetProgress(SavingsTargetRead):
    current_amount: float
    progress: float
    remaining: float
    milestones: List[Milestone]
    months_remaining: int
    monthly_required: float
    is_on_track: bool
    status: str


class TargetInsight(BaseModel):
    target_id: str
    target_name: str
    type: str
    code: str
    value: Optional[float] = None


class TargetOverview(BaseModel):
    targets: List[TargetProgress]
    insights: List[TargetInsight]


class CurrencyInfo(BaseModel):
    code: str
    label: str
    fraction_digits: int


class CurrencyList(BaseModel):
    base_currency: str
    currencies: List[CurrencyInfo]
    rates: Dict[str, float]


# Backup


class BackupDocument(BaseModel):
    version: int = 2
    export_date: Optional[dt.datetime] = None
    incomes: List[IncomeRead] = []
    expenses: List[ExpenseRead] = []
    budgets: List[BudgetRead] = []
    savings: List[SavingRead] = []
    master_data: List[MasterDataRead] = []
    bills: List[BillRead] = []
    bill_payments: List[BillPaymentRead] = []
    savings_targets: List[SavingsTargetRead] = []


class BackupStatus(BaseModel):
    last_backup_at: Optional[dt.datetime] = None
    reminder_due: bool
    reminder_interval_days: int
