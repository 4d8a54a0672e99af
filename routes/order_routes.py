from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from typing import Optional
import logging

from models.order_models import CheckoutRequest, OrderDetails, OrderStatus, OrderStatusUpdate, TransactionStatus
from models.notification_models import NotificationType
from dataBase import get_db
from utils import get_current_user, require_admin, serialize_doc, short_id, to_object_id, utcnow
from notification_service import create_notification, notify_admins
from email_service import send_order_confirmation
from routes.cart_routes import cart_totals, load_cart
from routes.discount_routes import evaluate_discount

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders"])


async def _order_with_items(db, order: dict) -> dict:
    data = serialize_doc(order)
    data["items"] = []
    async for item in db.order_items.find({"order_id": data["id"]}):
        data["items"].append(serialize_doc(item))
    return data


@router.post("/orders/checkout", status_code=201)
async def checkout(
    request: CheckoutRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    user_id = current_user["id"]
    items = await load_cart(db, user_id)
    if not items:
        raise HTTPException(status_code=400, detail="Your cart is empty")

    subtotal = cart_totals(items)["total_price"]
    discount, discount_off = None, 0.0
    if request.discount_code:
        discount, discount_off = await evaluate_discount(db, request.discount_code, subtotal)
    total = round(max(subtotal - discount_off, 0), 2)

    try:
        now = utcnow()
        order = {
            "user_id": user_id,
            "status": OrderStatus.CONFIRMED.value,
            "subtotal": subtotal,
            "discount_code": discount["code"] if discount else None,
            "discount_amount": discount_off,
            "total": total,
            "shipping_address": request.shipping_address,
            "created_at": now,
            "updated_at": now,
        }
        result = await db.orders.insert_one(order)
        order["_id"] = result.inserted_id
        order_id = str(result.inserted_id)

        order_items = [
            {
                "order_id": order_id,
                "product_id": item["product_id"],
                "product_name": item["product"].get("name") or "Unknown Product",
                "product_price": item["product"].get("price") or 0,
                "quantity": item["quantity"],
                "created_at": now,
            }
            for item in items
        ]
        await db.order_items.insert_many(order_items)

        for item in items:
            new_stock = max(0, (item["product"].get("stock") or 0) - item["quantity"])
            await db.products.update_one(
                {"_id": to_object_id(item["product_id"], "Product")},
                {"$set": {"stock": new_stock, "updated_at": now}},
            )

        await db.transactions.insert_one({
            "order_id": order_id,
            "user_id": user_id,
            "amount": total,
            "status": TransactionStatus.COMPLETED.value,
            "created_at": now,
        })

        if discount:
            await db.discounts.update_one({"_id": discount["_id"]}, {"$inc": {"used_count": 1}})

        await db.cart_items.delete_many({"user_id": user_id})

        await create_notification(
            db, user_id, NotificationType.ORDER_PLACED,
            "Order Placed",
            f"Your order #{short_id(order_id)} has been confirmed.",
            order_id,
        )
        await notify_admins(
            db, NotificationType.NEW_ORDER,
            "New Order",
            f"Order #{short_id(order_id)} for ${total:.2f}",
            order_id,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Checkout failed for user %s", user_id)
        raise HTTPException(status_code=500, detail=f"Failed to place order: {str(e)}")

    background_tasks.add_task(
        send_order_confirmation,
        current_user["email"],
        current_user.get("full_name") or current_user["email"],
        order_id,
        [
            {"name": i["product_name"], "quantity": i["quantity"], "price": i["product_price"]}
            for i in order_items
        ],
        total,
        request.shipping_address,
        discount_off,
    )
    logger.info("Order %s placed by %s for %.2f", order_id, user_id, total)

    created = await _order_with_items(db, order)
    return {"message": "Order placed successfully!", "order": created}


@router.get("/orders")
async def get_my_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    orders = []
    cursor = db.orders.find({"user_id": current_user["id"]}).sort("created_at", -1).skip(skip).limit(limit)
    async for order in cursor:
        orders.append(await _order_with_items(db, order))
    return {"total_orders": len(orders), "orders": orders}


@router.get("/orders/{order_id}", response_model=OrderDetails)
async def get_order(order_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    order = await db.orders.find_one({"_id": to_object_id(order_id, "Order")})
    if not order or (order["user_id"] != current_user["id"] and current_user.get("role") != "admin"):
        raise HTTPException(status_code=404, detail="Order not found")
    return await _order_with_items(db, order)


@router.get("/admin/orders")
async def list_all_orders(
    status: Optional[OrderStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    query = {"status": status.value} if status else {}
    orders = []
    async for order in db.orders.find(query).sort("created_at", -1).skip(skip).limit(limit):
        orders.append(await _order_with_items(db, order))
    total = await db.orders.count_documents(query)
    return {"total_orders": total, "orders": orders}


@router.put("/admin/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    update: OrderStatusUpdate,
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    oid = to_object_id(order_id, "Order")
    result = await db.orders.update_one(
        {"_id": oid},
        {"$set": {"status": update.status.value, "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Order not found")

    order = await db.orders.find_one({"_id": oid})
    status = update.status.value
    await create_notification(
        db, order["user_id"], NotificationType.ORDER_STATUS_UPDATE,
        f"Order {status.capitalize()}",
        f"Your order #{short_id(order_id)} has been {status}.",
        order_id,
    )
    return {"message": "Order status updated", "order": await _order_with_items(db, order)}


@router.delete("/admin/orders/{order_id}")
async def delete_order(order_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    oid = to_object_id(order_id, "Order")
    if not await db.orders.find_one({"_id": oid}):
        raise HTTPException(status_code=404, detail="Order not found")

    # Items first, then the order itself
    await db.order_items.delete_many({"order_id": order_id})
    await db.orders.delete_one({"_id": oid})
    logger.info("Order %s deleted by %s", order_id, admin["email"])
    return {"message": "Order deleted"}


@router.get("/admin/transactions")
async def list_transactions(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    transactions = []
    async for transaction in db.transactions.find().sort("created_at", -1).skip(skip).limit(limit):
        transactions.append(serialize_doc(transaction))
    return {"total_transactions": await db.transactions.count_documents({}), "transactions": transactions}
