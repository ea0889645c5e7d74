from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from sqlalchemy import func
from datetime import date
from typing import Optional
import csv
from io import StringIO

import analytics
from config import get_settings
from crud import Resource
from currency import CurrencyConverter, SUPPORTED_CURRENCIES, fraction_digits
from database import (
    get_db,
    Budget,
    Bill,
    BillPayment,
    Expense,
    Income,
    MasterData,
    Saving,
    SavingsTarget,
    User,
)
from ledger import BillPaymentResource, BillResource, SavingResource, TransactionResource
from schemas import (
    AccountBalance,
    BillOverview,
    BillCreate,
    BillPaymentCreate,
    BillPaymentRead,
    BillPaymentUpdate,
    BillRead,
    BillUpdate,
    BudgetCreate,
    BudgetRead,
    BudgetUpdate,
    BudgetUsage,
    CategoryTrend,
    CurrencyList,
    ExpenseCreate,
    ExpenseInsights,
    ExpenseRead,
    ExpenseUpdate,
    HealthScore,
    Heatmap,
    IncomeCreate,
    IncomeRead,
    IncomeUpdate,
    MasterDataCreate,
    MasterDataRead,
    MasterDataUpdate,
    SavingCreate,
    SavingKind,
    SavingRead,
    SavingsTargetCreate,
    SavingsTargetRead,
    SavingsTargetUpdate,
    SavingUpdate,
    Summary,
    TargetOverview,
)
from auth import get_current_user


router = APIRouter()

RESOURCES = [
    TransactionResource("incomes", Income, IncomeCreate, IncomeUpdate, IncomeRead),
    TransactionResource("expenses", Expense, ExpenseCreate, ExpenseUpdate, ExpenseRead),
    Resource("budgets", Budget, BudgetCreate, BudgetUpdate, BudgetRead),
    SavingResource(
        "savings",
        Saving,
        SavingCreate,
        SavingUpdate,
        SavingRead,
        money_fields=("deposit", "withdrawal"),
    ),
    Resource(
        "master_data",
        MasterData,
        MasterDataCreate,
        MasterDataUpdate,
        MasterDataRead,
        label="Master data",
        money_fields=(),
    ),
    BillResource("bills", Bill, BillCreate, BillUpdate, BillRead),
    BillPaymentResource(
        "bill_payments",
        BillPayment,
        BillPaymentCreate,
        BillPaymentUpdate,
        BillPaymentRead,
        label="Bill payment",
        money_fields=("amount_paid",),
    ),
    Resource(
        "savings_targets",
        SavingsTarget,
        SavingsTargetCreate,
        SavingsTargetUpdate,
        SavingsTargetRead,
        label="Savings target",
        money_fields=("target_amount",),
    ),
]


def _owned(db: Session, model, user: User):
    return db.query(model).filter(model.user_id == user.id).all()


@router.get("/analytics/summary", response_model=Summary)
async def get_summary(
    month: str = analytics.ALL_MONTHS,
    currency: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settings = get_settings()
    converter = CurrencyConverter(settings.base_currency, settings.currency_rates)
    rate, effective = converter.rate_for(currency)
    return analytics.dashboard_summary(
        _owned(db, Income, current_user),
        _owned(db, Expense, current_user),
        _owned(db, Saving, current_user),
        month,
        currency=effective,
        rate=rate,
    )


@router.get("/analytics/insights", response_model=ExpenseInsights)
async def get_expense_insights(
    month: str = analytics.ALL_MONTHS,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return analytics.expense_insights(_owned(db, Expense, current_user), month)


@router.get("/analytics/heatmap", response_model=Heatmap)
async def get_heatmap(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return analytics.expense_heatmap(_owned(db, Expense, current_user), month)


@router.get("/analytics/health-score", response_model=HealthScore)
async def get_health_score(
    month: str = analytics.ALL_MONTHS,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return analytics.health_score(
        _owned(db, Income, current_user),
        _owned(db, Expense, current_user),
        _owned(db, Saving, current_user),
        _owned(db, Budget, current_user),
        month,
    )


@router.get("/analytics/budgets", response_model=list[BudgetUsage])
async def get_budget_usage(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return analytics.budget_usage(
        _owned(db, Budget, current_user),
        _owned(db, Expense, current_user),
        analytics.valid_month(month),
    )


@router.get("/analytics/bills", response_model=BillOverview)
async def get_bill_overview(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return analytics.bill_statuses(
        _owned(db, Bill, current_user),
        _owned(db, BillPayment, current_user),
        analytics.valid_month(month),
    )


@router.get("/analytics/savings-accounts", response_model=list[AccountBalance])
async def get_savings_accounts(
    kind: Optional[SavingKind] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return analytics.account_balances(
        _owned(db, Saving, current_user), kind.value if kind else None
    )


@router.get("/analytics/targets", response_model=TargetOverview)
async def get_target_overview(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    balances = {
        account["account_name"]: account["balance"]
        for account in analytics.account_balances(
            _owned(db, Saving, current_user), SavingKind.SAVINGS.value
        )
    }
    progress = [
        analytics.target_progress(target, balances)
        for target in _owned(db, SavingsTarget, current_user)
    ]
    return {"targets": progress, "insights": analytics.target_insights(progress)}


@router.get("/analytics/months", response_model=list[str])
async def get_month_options(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    dates = [row.date for row in _owned(db, Income, current_user)]
    dates += [row.date for row in _owned(db, Expense, current_user)]
    return analytics.month_options(dates)


@router.get("/analytics/category-trends", response_model=list[CategoryTrend])
async def get_category_trends(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(
        Expense.category,
        Expense.month,
        func.sum(Expense.amount).label("total"),
    ).filter(Expense.user_id == current_user.id)

    if start_date:
        query = query.filter(Expense.date >= start_date)
    if end_date:
        query = query.filter(Expense.date <= end_date)

    trends = (
        query.group_by(Expense.category, Expense.month)
        .order_by(Expense.month, Expense.category)
        .all()
    )

    return [
        {"category": row.category, "month": row.month, "total": row.total or 0.0}
        for row in trends
    ]


@router.get("/currencies", response_model=CurrencyList)
async def get_currencies():
    settings = get_settings()
    return {
        "base_currency": settings.base_currency,
        "currencies": [
            {"code": code, "label": label, "fraction_digits": fraction_digits(code)}
            for code, label in SUPPORTED_CURRENCIES.items()
        ],
        "rates": settings.currency_rates,
    }


@router.get("/export-report")
async def export_financial_report(
    month: str = analytics.ALL_MONTHS,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Exports financial report as CSV for one month or all of them, containing:
    - Incomes and expenses of the period
    - Category-wise expense totals
    - Budgets of the period with their spending
    """
    if month != analytics.ALL_MONTHS:
        month = analytics.valid_month(month)

    income_query = db.query(Income).filter(Income.user_id == current_user.id)
    expense_query = db.query(Expense).filter(Expense.user_id == current_user.id)
    budget_query = db.query(Budget).filter(Budget.user_id == current_user.id)
    if month != analytics.ALL_MONTHS:
        income_query = income_query.filter(Income.month == month)
        expense_query = expense_query.filter(Expense.month == month)
        budget_query = budget_query.filter(Budget.month == month)

    incomes = income_query.order_by(Income.date).all()
    expenses = expense_query.order_by(Expense.date).all()
    budgets = budget_query.order_by(Budget.month, Budget.category).all()

    # Create CSV content
    csv_data = StringIO()
    writer = csv.writer(csv_data)

    # Write header
    writer.writerow(["Date", "Type", "Description", "Category", "Method", "Amount"])

    # Write transactions
    rows = [(i.date, "income", i.source, i.category, i.method, i.amount) for i in incomes]
    rows += [(e.date, "expense", e.name, e.category, e.method, e.amount) for e in expenses]
    for row in sorted(rows, key=lambda r: r[0]):
        writer.writerow(row)

    # Add summary section
    writer.writerow([])
    writer.writerow(["Category", "Total Spending"])
    for item in analytics.category_breakdown(expenses):
        writer.writerow([item["category"], item["total"]])

    # Add budget section
    writer.writerow([])
    writer.writerow(["Month", "Budget Category", "Budget", "Spent", "Remaining"])
    usage = analytics.budget_usage(budgets, expenses, analytics.ALL_MONTHS)
    for budget, item in zip(budgets, usage):
        writer.writerow(
            [budget.month, item["category"], item["budget"], item["spent"], item["remaining"]]
        )

    # Reset buffer position
    csv_data.seek(0)

    # Create streaming response
    response = StreamingResponse(
        iter([csv_data.getvalue()]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={current_user.username}_{month}_financial_report.csv"
        },
    )

    return response


for resource in RESOURCES:
    router.include_router(resource.router())
