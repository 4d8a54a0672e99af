from fastapi import APIRouter, Depends, HTTPException

from models.order_models import CartItemAdd, CartItemUpdate
from models.product_models import WishlistAdd
from dataBase import get_db
from utils import get_current_user, serialize_doc, to_object_id, utcnow

router = APIRouter(tags=["cart"])


async def load_cart(db, user_id: str) -> list:
    """Cart lines joined with their product; lines whose product is gone are skipped."""
    items = []
    async for item in db.cart_items.find({"user_id": user_id}).sort("created_at", 1):
        product = await db.products.find_one({"_id": to_object_id(item["product_id"], "Product")})
        if not product:
            continue
        line = serialize_doc(item)
        line["product"] = serialize_doc(product)
        items.append(line)
    return items


def cart_totals(items: list) -> dict:
    return {
        "total_items": sum(i["quantity"] for i in items),
        "total_price": round(sum(i["product"]["price"] * i["quantity"] for i in items), 2),
    }


async def _get_own_line(db, item_id: str, user_id: str) -> dict:
    item = await db.cart_items.find_one({"_id": to_object_id(item_id, "Cart item"), "user_id": user_id})
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return item


@router.get("/cart")
async def get_cart(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    items = await load_cart(db, current_user["id"])
    return {"items": items, **cart_totals(items)}


@router.post("/cart", status_code=201)
async def add_to_cart(item: CartItemAdd, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    product = await db.products.find_one({"_id": to_object_id(item.product_id, "Product")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    existing = await db.cart_items.find_one({"user_id": current_user["id"], "product_id": item.product_id})
    if existing:
        await db.cart_items.update_one(
            {"_id": existing["_id"]},
            {"$inc": {"quantity": item.quantity}},
        )
    else:
        await db.cart_items.insert_one({
            "user_id": current_user["id"],
            "product_id": item.product_id,
            "quantity": item.quantity,
            "created_at": utcnow(),
        })

    items = await load_cart(db, current_user["id"])
    return {"message": "Added to cart", "items": items, **cart_totals(items)}


@router.put("/cart/{item_id}")
async def update_cart_quantity(
    item_id: str,
    update: CartItemUpdate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    line = await _get_own_line(db, item_id, current_user["id"])
    if update.quantity < 1:
        await db.cart_items.delete_one({"_id": line["_id"]})
        message = "Removed from cart"
    else:
        await db.cart_items.update_one({"_id": line["_id"]}, {"$set": {"quantity": update.quantity}})
        message = "Quantity updated"

    items = await load_cart(db, current_user["id"])
    return {"message": message, "items": items, **cart_totals(items)}


@router.delete("/cart/{item_id}")
async def remove_from_cart(item_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    line = await _get_own_line(db, item_id, current_user["id"])
    await db.cart_items.delete_one({"_id": line["_id"]})
    return {"message": "Removed from cart"}


@router.delete("/cart")
async def clear_cart(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    result = await db.cart_items.delete_many({"user_id": current_user["id"]})
    return {"message": "Cart cleared", "removed_items": result.deleted_count}


# Wishlist
@router.get("/wishlist")
async def get_wishlist(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    items = []
    async for entry in db.wishlist.find({"user_id": current_user["id"]}).sort("created_at", -1):
        product = await db.products.find_one({"_id": to_object_id(entry["product_id"], "Product")})
        if product:
            items.append({**serialize_doc(entry), "product": serialize_doc(product)})
    return {"total_items": len(items), "items": items}


@router.post("/wishlist", status_code=201)
async def add_to_wishlist(entry: WishlistAdd, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    product = await db.products.find_one({"_id": to_object_id(entry.product_id, "Product")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if await db.wishlist.find_one({"user_id": current_user["id"], "product_id": entry.product_id}):
        raise HTTPException(status_code=400, detail="Product is already in your wishlist")

    data = {"user_id": current_user["id"], "product_id": entry.product_id, "created_at": utcnow()}
    result = await db.wishlist.insert_one(data)
    data["_id"] = result.inserted_id
    return {"message": "Added to wishlist", "item": serialize_doc(data)}


@router.delete("/wishlist/{item_id}")
async def remove_from_wishlist(item_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    result = await db.wishlist.delete_one(
        {"_id": to_object_id(item_id, "Wishlist item"), "user_id": current_user["id"]}
    )
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Wishlist item not found")
    return {"message": "Removed from wishlist"}
