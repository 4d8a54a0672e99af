from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from typing import Callable, Dict, List, Tuple
import csv
import io
import logging

from models.exchange_models import ExchangeBookStatus, ExchangeTransactionStatus
from models.order_models import OrderStatus, TransactionStatus
from models.product_models import LOW_STOCK_THRESHOLD
from models.profile_model import AdminUserUpdate, RoleUpdate
from models.report_models import ReportKind
from models.transfer_models import TransferStatus
from dataBase import get_db
from utils import require_admin, serialize_doc, to_object_id, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# Users
@router.get("/users")
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    users = []
    async for user in db.users.find().sort("created_at", -1).skip(skip).limit(limit):
        data = serialize_doc(user)
        data.setdefault("role", "user")
        users.append(data)
    return {"total_users": await db.users.count_documents({}), "users": users}


async def _update_user(db, user_id: str, fields: dict) -> dict:
    oid = to_object_id(user_id, "User")
    fields["updated_at"] = utcnow()
    result = await db.users.update_one({"_id": oid}, {"$set": fields})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_doc(await db.users.find_one({"_id": oid}))


@router.put("/users/{user_id}/role")
async def change_role(user_id: str, update: RoleUpdate, admin: dict = Depends(require_admin), db=Depends(get_db)):
    if user_id == admin["id"] and update.role.value != "admin":
        raise HTTPException(status_code=400, detail="You cannot remove your own admin role")
    user = await _update_user(db, user_id, {"role": update.role.value})
    logger.info("User %s role set to %s by %s", user_id, update.role.value, admin["email"])
    return {"message": "Role updated", "user": user}


@router.put("/users/{user_id}")
async def update_user(user_id: str, update: AdminUserUpdate, admin: dict = Depends(require_admin), db=Depends(get_db)):
    user = await _update_user(db, user_id, {"full_name": update.full_name.strip()})
    return {"message": "User updated", "user": user}


@router.delete("/users/{user_id}")
async def delete_user(user_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    if user_id == admin["id"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    result = await db.users.delete_one({"_id": to_object_id(user_id, "User")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="User not found")

    for collection in (db.cart_items, db.wishlist, db.notifications, db.user_ebooks):
        await collection.delete_many({"user_id": user_id})
    logger.info("User %s deleted by %s", user_id, admin["email"])
    return {"message": "User deleted"}


# Reports
async def sales_report(db) -> Tuple[dict, List[dict]]:
    completed = []
    async for t in db.transactions.find({"status": TransactionStatus.COMPLETED.value}).sort("created_at", -1):
        completed.append(serialize_doc(t))
    revenue = round(sum(t["amount"] for t in completed), 2)
    completed_orders = await db.orders.count_documents(
        {"status": {"$nin": [OrderStatus.PENDING.value, OrderStatus.CANCELLED.value]}}
    )
    summary = {
        "completed_transactions": len(completed),
        "total_revenue": revenue,
        "average_order_value": round(revenue / len(completed), 2) if completed else 0.0,
        "completed_orders": completed_orders,
        "latest_transactions": completed[:10],
    }
    rows = [
        {"id": t["id"], "order_id": t.get("order_id"), "user_id": t["user_id"],
         "amount": t["amount"], "status": t["status"], "created_at": t["created_at"]}
        for t in completed
    ]
    return summary, rows


async def users_report(db) -> Tuple[dict, List[dict]]:
    now = utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    users = [u async for u in db.users.find().sort("created_at", -1)]
    customers = await db.orders.distinct("user_id")
    summary = {
        "total_users": len(users),
        "new_this_month": sum(1 for u in users if u.get("created_at") and u["created_at"] >= month_start),
        "customers_with_orders": len(customers),
    }
    rows = [
        {"email": u["email"], "name": u.get("full_name"), "role": u.get("role", "user"),
         "created_at": u.get("created_at")}
        for u in users
    ]
    return summary, rows


async def inventory_report(db) -> Tuple[dict, List[dict]]:
    products = [p async for p in db.products.find().sort("stock", 1)]
    low_stock = [p for p in products if (p.get("stock") or 0) < LOW_STOCK_THRESHOLD]
    summary = {
        "product_count": len(products),
        "low_stock_count": len(low_stock),
        "out_of_stock_count": sum(1 for p in products if (p.get("stock") or 0) == 0),
        "inventory_value": round(sum((p.get("price") or 0) * (p.get("stock") or 0) for p in products), 2),
        "low_stock_products": [serialize_doc(p) for p in low_stock],
    }
    rows = [{"name": p["name"], "stock": p.get("stock") or 0, "price": p.get("price")} for p in low_stock]
    return summary, rows


async def transfers_report(db) -> Tuple[dict, List[dict]]:
    transfers = [t async for t in db.money_transfers.find().sort("created_at", -1)]
    by_status = {status.value: 0 for status in TransferStatus}
    for t in transfers:
        by_status[t["status"]] = by_status.get(t["status"], 0) + 1
    summary = {
        "total_transfers": len(transfers),
        "by_status": by_status,
        "completed_amount": round(
            sum(t["amount"] for t in transfers if t["status"] == TransferStatus.COMPLETED.value), 2
        ),
    }
    rows = [
        {"sender": t["sender_full_name"], "receiver": t["receiver_full_name"], "amount": t["amount"],
         "phone": t["sender_phone"], "status": t["status"], "created_at": t["created_at"]}
        for t in transfers
    ]
    return summary, rows


REPORTS: Dict[ReportKind, Callable] = {
    ReportKind.SALES: sales_report,
    ReportKind.USERS: users_report,
    ReportKind.INVENTORY: inventory_report,
    ReportKind.TRANSFERS: transfers_report,
}


def rows_to_csv(rows: List[dict]) -> str:
    if not rows:
        return ""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()))
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


@router.get("/reports/{kind}")
async def get_report(kind: ReportKind, admin: dict = Depends(require_admin), db=Depends(get_db)):
    summary, _ = await REPORTS[kind](db)
    return {"report": kind.value, "generated_at": utcnow(), **summary}


@router.get("/reports/{kind}/csv")
async def export_report(kind: ReportKind, admin: dict = Depends(require_admin), db=Depends(get_db)):
    _, rows = await REPORTS[kind](db)
    return Response(
        content=rows_to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{kind.value}_report.csv"'},
    )


# Exchange queue
@router.get("/exchange-queue")
async def exchange_queue(admin: dict = Depends(require_admin), db=Depends(get_db)):
    books = []
    async for book in db.exchange_books.find(
        {"status": ExchangeBookStatus.PENDING_APPROVAL.value}
    ).sort("created_at", 1):
        books.append(serialize_doc(book))

    transactions = []
    async for t in db.exchange_transactions.find(
        {"status": ExchangeTransactionStatus.PENDING_APPROVAL.value}
    ).sort("created_at", 1):
        data = serialize_doc(t)
        book = await db.exchange_books.find_one({"_id": to_object_id(t["book_id"], "Book")})
        data["book"] = serialize_doc(book)
        transactions.append(data)

    return {
        "pending_deposits": books,
        "pending_transactions": transactions,
        "total_pending": len(books) + len(transactions),
    }
