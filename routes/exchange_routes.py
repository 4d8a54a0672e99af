from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from datetime import timedelta
import logging
import re

from models.exchange_models import (
    DepositBook,
    ExchangeBookStatus,
    ExchangeMessageCreate,
    ExchangeRequest,
    ExchangeTransactionDetails,
    ExchangeTransactionStatus,
    TransactionType,
    LOAN_PERIOD_DAYS,
)
from models.notification_models import NotificationType
from dataBase import get_db
from utils import get_current_user, require_admin, serialize_doc, to_document, to_object_id, utcnow
from notification_service import create_notification, notify_admins

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exchange", tags=["exchange"])

LOAN_TYPES = (TransactionType.BORROW.value, TransactionType.EXCHANGE.value)


async def _get_book_or_404(db, book_id: str) -> dict:
    book = await db.exchange_books.find_one({"_id": to_object_id(book_id, "Book")})
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


async def _get_transaction_or_404(db, transaction_id: str) -> dict:
    transaction = await db.exchange_transactions.find_one(
        {"_id": to_object_id(transaction_id, "Transaction")}
    )
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return transaction


async def _set_book_status(db, book_id: Optional[str], status: ExchangeBookStatus) -> None:
    if not book_id:
        return
    await db.exchange_books.update_one(
        {"_id": to_object_id(book_id, "Book")},
        {"$set": {"status": status.value, "updated_at": utcnow()}},
    )


def is_overdue(transaction: dict, now=None) -> bool:
    due = transaction.get("loan_due_date")
    return (
        transaction.get("status") == ExchangeTransactionStatus.ACTIVE.value
        and transaction.get("transaction_type") in LOAN_TYPES
        and due is not None
        and due < (now or utcnow())
    )


async def find_overdue(db, user_id: Optional[str] = None) -> List[dict]:
    query = {
        "status": ExchangeTransactionStatus.ACTIVE.value,
        "transaction_type": {"$in": list(LOAN_TYPES)},
        "loan_due_date": {"$lt": utcnow()},
    }
    if user_id is not None:
        query["user_id"] = user_id
    return [t async for t in db.exchange_transactions.find(query).sort("loan_due_date", 1)]


async def _transaction_details(db, transaction: dict) -> dict:
    data = serialize_doc(transaction)
    data["is_overdue"] = is_overdue(transaction)
    book = await db.exchange_books.find_one({"_id": to_object_id(transaction["book_id"], "Book")})
    data["book"] = serialize_doc(book)
    data["offered_book"] = None
    if transaction.get("offered_book_id"):
        offered = await db.exchange_books.find_one(
            {"_id": to_object_id(transaction["offered_book_id"], "Book")}
        )
        data["offered_book"] = serialize_doc(offered)
    return data


async def _book_depositor(db, transaction: dict) -> Optional[str]:
    book = await db.exchange_books.find_one({"_id": to_object_id(transaction["book_id"], "Book")})
    return book["depositor_id"] if book else None


# Books
@router.post("/books", status_code=201)
async def deposit_book(book: DepositBook, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    now = utcnow()
    data = to_document(book)
    data.update({
        "depositor_id": current_user["id"],
        "status": ExchangeBookStatus.PENDING_APPROVAL.value,
        "created_at": now,
        "updated_at": now,
    })
    result = await db.exchange_books.insert_one(data)
    data["_id"] = result.inserted_id
    book_id = str(result.inserted_id)

    await notify_admins(
        db, NotificationType.BOOK_DEPOSIT,
        "New Book Deposit",
        f"\"{book.title}\" by {book.author} is waiting for approval.",
        book_id,
    )
    logger.info("Book %s deposited by %s", book_id, current_user["id"])
    return {"message": "Book submitted for approval", "book": serialize_doc(data)}


@router.get("/books")
async def list_available_books(
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db=Depends(get_db),
):
    query = {"status": ExchangeBookStatus.AVAILABLE.value}
    if search:
        query["title"] = {"$regex": re.escape(search.strip()), "$options": "i"}
    books = []
    async for book in db.exchange_books.find(query).sort("created_at", -1).skip(skip).limit(limit):
        books.append(serialize_doc(book))
    return {"total_books": await db.exchange_books.count_documents(query), "books": books}


@router.get("/books/mine")
async def my_deposits(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    books = []
    async for book in db.exchange_books.find({"depositor_id": current_user["id"]}).sort("created_at", -1):
        books.append(serialize_doc(book))
    return {"total_books": len(books), "books": books}


async def _review_deposit(db, book_id: str, approve: bool) -> dict:
    book = await _get_book_or_404(db, book_id)
    if book["status"] != ExchangeBookStatus.PENDING_APPROVAL.value:
        raise HTTPException(status_code=400, detail="Only books pending approval can be reviewed")

    new_status = ExchangeBookStatus.AVAILABLE if approve else ExchangeBookStatus.REJECTED
    await _set_book_status(db, book_id, new_status)

    if approve:
        await create_notification(
            db, book["depositor_id"], NotificationType.DEPOSIT_APPROVED,
            "Deposit Approved",
            f"\"{book['title']}\" is now available in the exchange.",
            book_id,
        )
    else:
        await create_notification(
            db, book["depositor_id"], NotificationType.DEPOSIT_REJECTED,
            "Deposit Rejected",
            f"\"{book['title']}\" was not accepted for the exchange.",
            book_id,
        )
    return serialize_doc(await db.exchange_books.find_one({"_id": book["_id"]}))


@router.post("/books/{book_id}/approve")
async def approve_deposit(book_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    return {"message": "Book approved", "book": await _review_deposit(db, book_id, approve=True)}


@router.post("/books/{book_id}/reject")
async def reject_deposit(book_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    return {"message": "Book rejected", "book": await _review_deposit(db, book_id, approve=False)}


# Transactions
@router.post("/transactions", status_code=201)
async def request_book(request: ExchangeRequest, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    user_id = current_user["id"]
    book = await _get_book_or_404(db, request.book_id)
    if book["status"] != ExchangeBookStatus.AVAILABLE.value:
        raise HTTPException(status_code=400, detail="Book is not available")
    if book["depositor_id"] == user_id:
        raise HTTPException(status_code=400, detail="You cannot request your own book")

    kind = request.transaction_type
    if kind.value in LOAN_TYPES and await find_overdue(db, user_id):
        raise HTTPException(
            status_code=400,
            detail="You have an overdue book. Please return it before borrowing or exchanging another.",
        )

    if kind == TransactionType.EXCHANGE:
        if not request.offered_book_id:
            raise HTTPException(status_code=400, detail="Choose one of your books to offer in exchange")
        offered = await _get_book_or_404(db, request.offered_book_id)
        if offered["depositor_id"] != user_id:
            raise HTTPException(status_code=400, detail="You can only offer books you deposited")
        if offered["status"] != ExchangeBookStatus.AVAILABLE.value:
            raise HTTPException(status_code=400, detail="The offered book is not available")

    now = utcnow()
    transaction = {
        "book_id": request.book_id,
        "user_id": user_id,
        "transaction_type": kind.value,
        "offered_book_id": request.offered_book_id if kind == TransactionType.EXCHANGE else None,
        "status": ExchangeTransactionStatus.PENDING_APPROVAL.value,
        "loan_due_date": None,
        "returned_at": None,
        "created_at": now,
        "updated_at": now,
    }
    result = await db.exchange_transactions.insert_one(transaction)
    transaction["_id"] = result.inserted_id
    transaction_id = str(result.inserted_id)

    await notify_admins(
        db, f"book_{kind.value}_request",
        f"New {kind.value.capitalize()} Request",
        f"{current_user.get('full_name') or current_user['email']} wants to {kind.value} \"{book['title']}\".",
        transaction_id,
    )
    return {"message": "Request submitted for approval", "transaction": await _transaction_details(db, transaction)}


@router.get("/transactions/mine", response_model=List[ExchangeTransactionDetails])
async def my_transactions(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    transactions = []
    async for t in db.exchange_transactions.find({"user_id": current_user["id"]}).sort("created_at", -1):
        transactions.append(await _transaction_details(db, t))
    return transactions


@router.get("/overdue-status")
async def overdue_status(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    overdue = await find_overdue(db, current_user["id"])
    return {
        "has_overdue": bool(overdue),
        "overdue_count": len(overdue),
        "transactions": [serialize_doc(t) for t in overdue],
    }


@router.get("/transactions", response_model=List[ExchangeTransactionDetails])
async def list_transactions(
    status: Optional[ExchangeTransactionStatus] = None,
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    query = {"status": status.value} if status else {}
    transactions = []
    async for t in db.exchange_transactions.find(query).sort("created_at", -1):
        transactions.append(await _transaction_details(db, t))
    return transactions


@router.get("/transactions/overdue", response_model=List[ExchangeTransactionDetails])
async def list_overdue(admin: dict = Depends(require_admin), db=Depends(get_db)):
    return [await _transaction_details(db, t) for t in await find_overdue(db)]


@router.post("/transactions/{transaction_id}/approve")
async def approve_transaction(transaction_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    transaction = await _get_transaction_or_404(db, transaction_id)
    if transaction["status"] != ExchangeTransactionStatus.PENDING_APPROVAL.value:
        raise HTTPException(status_code=400, detail="Only pending requests can be approved")
    book = await _get_book_or_404(db, transaction["book_id"])
    if book["status"] != ExchangeBookStatus.AVAILABLE.value:
        raise HTTPException(status_code=400, detail="Book is no longer available")

    kind = transaction["transaction_type"]
    if kind == TransactionType.EXCHANGE.value:
        offered = await _get_book_or_404(db, transaction.get("offered_book_id"))
        if offered["status"] != ExchangeBookStatus.AVAILABLE.value:
            raise HTTPException(status_code=400, detail="The offered book is no longer available")

    now = utcnow()
    try:
        update = {"status": ExchangeTransactionStatus.ACTIVE.value, "updated_at": now}
        if kind in LOAN_TYPES:
            update["loan_due_date"] = now + timedelta(days=LOAN_PERIOD_DAYS)
            await _set_book_status(db, transaction["book_id"], ExchangeBookStatus.ON_LOAN)
            if kind == TransactionType.EXCHANGE.value:
                await _set_book_status(db, transaction.get("offered_book_id"), ExchangeBookStatus.ON_LOAN)
        else:
            await _set_book_status(db, transaction["book_id"], ExchangeBookStatus.SOLD)
        await db.exchange_transactions.update_one({"_id": transaction["_id"]}, {"$set": update})

        await create_notification(
            db, transaction["user_id"], f"{kind}_approved",
            f"{kind.capitalize()} Approved",
            f"Your {kind} request for \"{book['title']}\" was approved.",
            transaction_id,
        )
        await create_notification(
            db, book["depositor_id"], NotificationType.DEPOSIT_CHANGED_HANDS,
            "Your Book Changed Hands",
            f"\"{book['title']}\" went out as a {kind}.",
            transaction_id,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Approving transaction %s failed", transaction_id)
        raise HTTPException(status_code=500, detail=str(e))

    updated = await db.exchange_transactions.find_one({"_id": transaction["_id"]})
    return {"message": "Request approved", "transaction": await _transaction_details(db, updated)}


@router.post("/transactions/{transaction_id}/reject")
async def reject_transaction(transaction_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    transaction = await _get_transaction_or_404(db, transaction_id)
    if transaction["status"] != ExchangeTransactionStatus.PENDING_APPROVAL.value:
        raise HTTPException(status_code=400, detail="Only pending requests can be rejected")

    kind = transaction["transaction_type"]
    await db.exchange_transactions.update_one(
        {"_id": transaction["_id"]},
        {"$set": {"status": ExchangeTransactionStatus.REJECTED.value, "updated_at": utcnow()}},
    )
    await create_notification(
        db, transaction["user_id"], f"{kind}_rejected",
        f"{kind.capitalize()} Rejected",
        f"Your {kind} request was not approved.",
        transaction_id,
    )
    updated = await db.exchange_transactions.find_one({"_id": transaction["_id"]})
    return {"message": "Request rejected", "transaction": await _transaction_details(db, updated)}


@router.post("/transactions/{transaction_id}/return")
async def return_book(transaction_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    transaction = await _get_transaction_or_404(db, transaction_id)
    if transaction["user_id"] != current_user["id"] and current_user.get("role") != "admin":
        raise HTTPException(status_code=404, detail="Transaction not found")
    if transaction["status"] != ExchangeTransactionStatus.ACTIVE.value or transaction["transaction_type"] not in LOAN_TYPES:
        raise HTTPException(status_code=400, detail="Only active loans can be returned")

    now = utcnow()
    await db.exchange_transactions.update_one(
        {"_id": transaction["_id"]},
        {"$set": {"status": ExchangeTransactionStatus.RETURNED.value, "returned_at": now, "updated_at": now}},
    )
    await _set_book_status(db, transaction["book_id"], ExchangeBookStatus.AVAILABLE)
    await _set_book_status(db, transaction.get("offered_book_id"), ExchangeBookStatus.AVAILABLE)

    await notify_admins(
        db, NotificationType.BOOK_RETURNED,
        "Book Returned",
        f"A {transaction['transaction_type']} was returned.",
        transaction_id,
    )
    updated = await db.exchange_transactions.find_one({"_id": transaction["_id"]})
    return {"message": "Book returned", "transaction": await _transaction_details(db, updated)}


# Messages
async def _check_participant(db, transaction: dict, user: dict) -> Optional[str]:
    """Returns the depositor id; raises 403 for anyone outside the transaction."""
    depositor_id = await _book_depositor(db, transaction)
    if user.get("role") != "admin" and user["id"] not in (transaction["user_id"], depositor_id):
        raise HTTPException(status_code=403, detail="You are not part of this transaction")
    return depositor_id


@router.get("/transactions/{transaction_id}/messages")
async def list_messages(transaction_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    transaction = await _get_transaction_or_404(db, transaction_id)
    await _check_participant(db, transaction, current_user)
    messages = []
    async for message in db.exchange_messages.find({"transaction_id": transaction_id}).sort("created_at", 1):
        messages.append(serialize_doc(message))
    return {"transaction_id": transaction_id, "messages": messages}


@router.post("/transactions/{transaction_id}/messages", status_code=201)
async def post_message(
    transaction_id: str,
    body: ExchangeMessageCreate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    transaction = await _get_transaction_or_404(db, transaction_id)
    depositor_id = await _check_participant(db, transaction, current_user)

    data = {
        "transaction_id": transaction_id,
        "sender_id": current_user["id"],
        "sender_name": current_user.get("full_name") or current_user["email"],
        "message": body.message,
        "created_at": utcnow(),
    }
    result = await db.exchange_messages.insert_one(data)
    data["_id"] = result.inserted_id

    if current_user["id"] == transaction["user_id"]:
        recipient = depositor_id
    else:
        recipient = transaction["user_id"]
    if recipient and recipient != current_user["id"]:
        await create_notification(
            db, recipient, NotificationType.EXCHANGE_MESSAGE,
            "New Message",
            f"{data['sender_name']}: {body.message[:100]}",
            transaction_id,
        )
    return {"message": "Message sent", "data": serialize_doc(data)}
