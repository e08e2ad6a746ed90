from decimal import Decimal
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from expense_tracker import __version__
from expense_tracker.backend import auth, crud, models, schemas
from expense_tracker.backend.config import get_settings
from expense_tracker.backend.database import engine, get_db
from expense_tracker.logging_setup import configure_logging, get_logger

configure_logging()
logger = get_logger("expense_tracker.backend.main")

# Create all tables on startup if they don't exist
models.Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Expense Tracker API",
    description="A personal finance expense tracker API with idempotent expense creation.",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)


@app.get("/", tags=["Health"])
def root():
    return {"status": "ok", "message": "Expense Tracker API is running."}


@app.get("/health", tags=["Health"])
def health():
    return {"status": "healthy"}


@app.post(
    "/expenses",
    response_model=schemas.ExpenseWriteResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Expenses"],
    summary="Create a new expense (idempotent)",
)
def create_expense(
    expense_in: schemas.ExpenseCreate,
    owner_id: str = Depends(auth.get_current_owner),
    db: Session = Depends(get_db),
):
    """
    Create a new expense entry.

    - **Idempotent**: sending the same `idempotency_key` more than once (e.g. a
      retry after a slow network) returns the original record with
      `outcome: "existing"` and status 200 instead of creating a duplicate.
    - Keys are scoped per account: two users may use the same key.
    - 503 means a concurrent request with the same key has not finished yet;
      retrying with the same key is safe.
    """
    result = crud.write_expense(db, owner_id, expense_in)

    if result.outcome is crud.WriteOutcome.TRANSIENT:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Expense is still being saved. Retry with the same idempotency key.",
        )

    body = schemas.ExpenseWriteResponse(
        outcome=result.outcome.value,
        record=schemas.ExpenseResponse.model_validate(result.record),
    )
    if result.outcome is crud.WriteOutcome.EXISTING:
        # Return 200 (not 201) to signal idempotent replay
        return JSONResponse(status_code=status.HTTP_200_OK, content=jsonable_encoder(body))
    return body


@app.get(
    "/expenses",
    response_model=schemas.ExpenseListResponse,
    tags=["Expenses"],
    summary="List expenses with optional filter and sort",
)
def list_expenses(
    category: Optional[str] = Query(default=None, description="Filter by category (exact match)"),
    sort: Literal["date_desc", "date_asc"] = Query(default="date_desc", description="Date sort order"),
    owner_id: str = Depends(auth.get_current_owner),
    db: Session = Depends(get_db),
):
    """
    Retrieve the caller's expenses.

    - Filter by `category`.
    - Sort by date: `sort=date_desc` (default) = newest first, `date_asc` = oldest first.
    - Response includes the `total` of the filtered/sorted result set.
    """
    expenses = crud.get_expenses(db, owner_id, category=category, sort_desc=sort == "date_desc")
    expenses_pydantic = [schemas.ExpenseResponse.model_validate(e) for e in expenses]
    total = sum((e.amount for e in expenses_pydantic), Decimal("0.00"))
    return schemas.ExpenseListResponse(
        expenses=expenses_pydantic, total=total, count=len(expenses_pydantic)
    )


@app.get(
    "/expenses/categories",
    response_model=list[str],
    tags=["Expenses"],
    summary="Get all distinct categories",
)
def list_categories(
    owner_id: str = Depends(auth.get_current_owner),
    db: Session = Depends(get_db),
):
    """Returns the caller's unique categories, for use in filter dropdowns."""
    return crud.get_all_categories(db, owner_id)


@app.delete(
    "/expenses/{expense_id}",
    response_model=schemas.ExpenseDeleteResponse,
    tags=["Expenses"],
    summary="Delete an expense",
)
def delete_expense(
    expense_id: str,
    owner_id: str = Depends(auth.get_current_owner),
    db: Session = Depends(get_db),
):
    """
    Delete one of the caller's expenses. Deleting a missing (or someone
    else's) expense answers 404 with `outcome: "not_found"`, so repeating a
    delete is harmless.
    """
    result = crud.delete_expense(db, owner_id, expense_id)
    if result.outcome is crud.DeleteOutcome.NOT_FOUND:
        body = schemas.ExpenseDeleteResponse(outcome=result.outcome.value)
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=jsonable_encoder(body))
    return schemas.ExpenseDeleteResponse(
        outcome=result.outcome.value,
        record=schemas.ExpenseResponse.model_validate(result.record),
    )
