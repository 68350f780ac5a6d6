import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from analytics import BudgetRecord, TransactionRecord
from auth import (
    generate_csrf_token,
    issue_session_token,
    read_session_token,
    validate_csrf_token,
)
from config import get_settings
from dashboard import AccountRecord, NoData
from database import create_tables, get_db, session_scope
from models import Category, TransactionType, User
from periods import current_month, resolve_range
from schemas import AccountIn, BudgetIn, CategoryIn, LoginIn, SignupIn, TransactionIn
from services import (
    AccountService,
    AnalyticsService,
    BudgetService,
    CategoryService,
    DashboardService,
    TransactionFilters,
    TransactionService,
    UserService,
    seed_default_categories,
)

logging.basicConfig(level=get_settings().log_level)

app = FastAPI(title="Finance Tracker")

RETRYABLE_ERROR = "Failed to load data. Please try again."


@app.on_event("startup")
def startup_event():
    create_tables()
    with session_scope() as session:
        seed_default_categories(session)


def current_user_id(request: Request, db: Session = Depends(get_db)) -> Optional[int]:
    settings = get_settings()
    user_id = read_session_token(request.cookies.get(settings.session_cookie))
    if user_id is None or UserService(db).get(user_id) is None:
        return None
    return user_id


def require_user(user_id: Optional[int] = Depends(current_user_id)) -> int:
    if user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


def require_csrf(request: Request, user_id: int = Depends(require_user)) -> int:
    if not validate_csrf_token(request.headers.get("X-CSRF-Token"), user_id):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")
    return user_id


def http_error(exc: ValueError) -> HTTPException:
    message = str(exc)
    status = 404 if message.lower().endswith("not found") else 400
    return HTTPException(status_code=status, detail=message)


def _parse_date(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name} date") from exc


def _parse_int(value: Optional[str], name: str) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}") from exc


def filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params
    txn_type = None
    if params.get("type"):
        try:
            txn_type = TransactionType(params["type"])
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid type") from exc
    return TransactionFilters(
        start=_parse_date(params.get("start"), "start"),
        end=_parse_date(params.get("end"), "end"),
        type=txn_type,
        account_id=_parse_int(params.get("account"), "account"),
        category_id=_parse_int(params.get("category"), "category"),
    )


def category_to_dict(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "is_default": category.is_default,
    }


def session_payload(user: User) -> dict[str, object]:
    return {
        "user": {"id": user.id, "email": user.email},
        "csrf_token": generate_csrf_token(user.id),
    }


def _start_session(response: Response, user: User) -> None:
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie,
        issue_session_token(user.id),
        max_age=settings.session_max_age_secs,
        httponly=True,
        samesite="lax",
    )


@app.post("/auth/signup", status_code=201)
def signup(data: SignupIn, response: Response, db: Session = Depends(get_db)):
    try:
        user = UserService(db).signup(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    _start_session(response, user)
    return session_payload(user)


@app.post("/auth/login")
def login(data: LoginIn, response: Response, db: Session = Depends(get_db)):
    try:
        user = UserService(db).authenticate(data)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    _start_session(response, user)
    logging.info(f"login: user_id={user.id}")
    return session_payload(user)


@app.post("/auth/logout")
def logout(response: Response):
    response.delete_cookie(get_settings().session_cookie)
    return {"ok": True}


@app.get("/auth/session")
def session_info(
    user_id: int = Depends(require_user), db: Session = Depends(get_db)
):
    return session_payload(UserService(db).get(user_id))


@app.get("/api/dashboard")
def api_dashboard(
    user_id: Optional[int] = Depends(current_user_id), db: Session = Depends(get_db)
):
    try:
        summary = DashboardService(db, user_id).summary()
    except SQLAlchemyError as exc:
        logging.exception(f"dashboard_failed: user_id={user_id}")
        raise HTTPException(status_code=503, detail=RETRYABLE_ERROR) from exc
    if isinstance(summary, NoData):
        raise HTTPException(status_code=401, detail="Authentication required")
    return summary.to_dict()


@app.get("/api/analytics")
def api_analytics(
    request: Request,
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
):
    params = request.query_params
    try:
        period = resolve_range(
            params.get("range"), params.get("start"), params.get("end")
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        return AnalyticsService(db, user_id).report(period)
    except SQLAlchemyError as exc:
        logging.exception(f"analytics_failed: user_id={user_id} range={period.slug}")
        raise HTTPException(status_code=503, detail=RETRYABLE_ERROR) from exc


@app.get("/api/accounts")
def list_accounts(user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    return [a.to_dict() for a in AccountService(db, user_id).records()]


@app.post("/api/accounts", status_code=201)
def create_account(
    data: AccountIn, user_id: int = Depends(require_csrf), db: Session = Depends(get_db)
):
    account = AccountService(db, user_id).create(data)
    return AccountRecord.from_model(account).to_dict()


@app.put("/api/accounts/{account_id}")
def update_account(
    account_id: int,
    data: AccountIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        account = AccountService(db, user_id).update(account_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return AccountRecord.from_model(account).to_dict()


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(
    account_id: int, user_id: int = Depends(require_csrf), db: Session = Depends(get_db)
):
    try:
        AccountService(db, user_id).delete(account_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/categories")
def list_categories(
    user_id: int = Depends(require_user), db: Session = Depends(get_db)
):
    return [category_to_dict(c) for c in CategoryService(db, user_id).list_all()]


@app.post("/api/categories", status_code=201)
def create_category(
    data: CategoryIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return category_to_dict(category)


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int,
    data: CategoryIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        category = CategoryService(db, user_id).update(category_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return category_to_dict(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/transactions")
def list_transactions(
    request: Request,
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    page = max(_parse_int(request.query_params.get("page"), "page") or 1, 1)
    limit = _parse_int(request.query_params.get("limit"), "limit") or 50
    limit = min(max(limit, 1), 100)
    offset = (page - 1) * limit
    items = TransactionService(db, user_id).list(
        filters, limit=limit + 1, offset=offset
    )
    has_more = len(items) > limit
    items = items[:limit]
    return {
        "items": [TransactionRecord.from_model(t).to_dict() for t in items],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.get("/api/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).get(transaction_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return TransactionRecord.from_model(txn).to_dict()


@app.post("/api/transactions", status_code=201)
def create_transaction(
    data: TransactionIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return TransactionRecord.from_model(txn).to_dict()


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    data: TransactionIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return TransactionRecord.from_model(txn).to_dict()


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/budgets")
def list_budgets(user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    return BudgetService(db, user_id).progress_for_month(current_month())


@app.post("/api/budgets", status_code=201)
def create_budget(
    data: BudgetIn, user_id: int = Depends(require_csrf), db: Session = Depends(get_db)
):
    try:
        budget = BudgetService(db, user_id).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return BudgetRecord.from_model(budget).to_dict()


@app.put("/api/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    data: BudgetIn,
    user_id: int = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        budget = BudgetService(db, user_id).update(budget_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return BudgetRecord.from_model(budget).to_dict()


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int, user_id: int = Depends(require_csrf), db: Session = Depends(get_db)
):
    try:
        BudgetService(db, user_id).delete(budget_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
