from fastapi import APIRouter, Depends, HTTPException
from typing import Tuple

from models.discount_models import (
    check_discount_values,
    DiscountCreate,
    DiscountType,
    DiscountUpdate,
    DiscountValidation,
)
from dataBase import get_db
from utils import require_admin, serialize_doc, to_document, to_object_id, utcnow

router = APIRouter(tags=["discounts"])

REQUIRED_FIELDS = ("name", "discount_type", "discount_value", "min_order_amount", "is_active")


def discount_amount(discount: dict, subtotal: float) -> float:
    if discount["discount_type"] == DiscountType.PERCENTAGE.value:
        amount = subtotal * discount["discount_value"] / 100
    else:
        amount = discount["discount_value"]
    return round(min(amount, subtotal), 2)


async def evaluate_discount(db, code: str, subtotal: float) -> Tuple[dict, float]:
    """Look up a code and check it applies to this subtotal.

    Returns the discount document and the amount to take off. Raises a 400
    describing the first rule the code fails.
    """
    discount = await db.discounts.find_one({"code": code.strip().upper()})
    if not discount:
        raise HTTPException(status_code=400, detail="Invalid discount code")
    if not discount.get("is_active", True):
        raise HTTPException(status_code=400, detail="This discount code is no longer active")

    now = utcnow()
    if discount.get("start_date") and now < discount["start_date"]:
        raise HTTPException(status_code=400, detail="This discount code is not active yet")
    if discount.get("end_date") and now > discount["end_date"]:
        raise HTTPException(status_code=400, detail="This discount code has expired")

    max_uses = discount.get("max_uses")
    if max_uses is not None and discount.get("used_count", 0) >= max_uses:
        raise HTTPException(status_code=400, detail="This discount code has reached its usage limit")

    minimum = discount.get("min_order_amount") or 0
    if subtotal < minimum:
        raise HTTPException(
            status_code=400,
            detail=f"Orders must be at least ${minimum:.2f} to use this code",
        )
    return discount, discount_amount(discount, subtotal)


@router.get("/admin/discounts")
async def list_discounts(admin: dict = Depends(require_admin), db=Depends(get_db)):
    discounts = []
    async for discount in db.discounts.find().sort("created_at", -1):
        discounts.append(serialize_doc(discount))
    return {"total_discounts": len(discounts), "discounts": discounts}


@router.post("/admin/discounts", status_code=201)
async def create_discount(discount: DiscountCreate, admin: dict = Depends(require_admin), db=Depends(get_db)):
    if await db.discounts.find_one({"code": discount.code}):
        raise HTTPException(status_code=400, detail=f"Discount code '{discount.code}' already exists")
    data = to_document(discount)
    data["used_count"] = 0
    data["created_at"] = utcnow()
    result = await db.discounts.insert_one(data)
    data["_id"] = result.inserted_id
    return {"message": "Discount created", "discount": serialize_doc(data)}


@router.put("/admin/discounts/{discount_id}")
async def update_discount(
    discount_id: str,
    updated_data: DiscountUpdate,
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    oid = to_object_id(discount_id, "Discount")
    update_fields = {
        key: value
        for key, value in to_document(updated_data, exclude_unset=True).items()
        if value is not None or key not in REQUIRED_FIELDS
    }
    if not update_fields:
        raise HTTPException(status_code=400, detail="No fields provided to update.")
    existing = await db.discounts.find_one({"_id": oid})
    if not existing:
        raise HTTPException(status_code=404, detail="Discount not found")

    merged = {**existing, **update_fields}
    try:
        check_discount_values(
            merged["discount_type"], merged["discount_value"], merged.get("start_date"), merged.get("end_date")
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    await db.discounts.update_one({"_id": oid}, {"$set": update_fields})
    return {"message": "Discount updated", "discount": serialize_doc(await db.discounts.find_one({"_id": oid}))}


@router.delete("/admin/discounts/{discount_id}")
async def delete_discount(discount_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    result = await db.discounts.delete_one({"_id": to_object_id(discount_id, "Discount")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Discount not found")
    return {"message": "Discount deleted"}


@router.post("/discounts/validate")
async def validate_discount(request: DiscountValidation, db=Depends(get_db)):
    discount, amount = await evaluate_discount(db, request.code, request.subtotal)
    return {
        "code": discount["code"],
        "name": discount["name"],
        "discount_amount": amount,
        "total": round(request.subtotal - amount, 2),
    }
