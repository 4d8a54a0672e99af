from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging
import re

from models.product_models import (
    CategoryCreate,
    CategoryUpdate,
    ProductCreate,
    ProductSort,
    ProductUpdate,
    ReviewCreate,
    ReviewSummary,
    VariantCreate,
    VariantUpdate,
)
from dataBase import get_db
from utils import get_current_user, require_admin, serialize_doc, to_document, to_object_id, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["catalog"])

SORTS = {
    ProductSort.NEWEST: [("created_at", -1)],
    ProductSort.PRICE_ASC: [("price", 1)],
    ProductSort.PRICE_DESC: [("price", -1)],
    ProductSort.NAME: [("name", 1)],
}


async def _get_product_or_404(db, product_id: str) -> dict:
    product = await db.products.find_one({"_id": to_object_id(product_id, "Product")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


async def _ensure_unique_slug(collection, slug: str, exclude_id=None) -> None:
    query = {"slug": slug}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if await collection.find_one(query):
        raise HTTPException(status_code=400, detail=f"Slug '{slug}' is already in use")


# Categories
@router.get("/categories")
async def list_categories(db=Depends(get_db)):
    categories = []
    async for category in db.categories.find().sort("name", 1):
        categories.append(serialize_doc(category))
    return {"total_categories": len(categories), "categories": categories}


@router.get("/categories/{slug}")
async def get_category(slug: str, db=Depends(get_db)):
    category = await db.categories.find_one({"slug": slug})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    product_count = await db.products.count_documents({"category_id": str(category["_id"])})
    return {**serialize_doc(category), "product_count": product_count}


@router.post("/categories", status_code=201)
async def create_category(category: CategoryCreate, admin: dict = Depends(require_admin), db=Depends(get_db)):
    await _ensure_unique_slug(db.categories, category.slug)
    data = to_document(category)
    data["created_at"] = utcnow()
    result = await db.categories.insert_one(data)
    data["_id"] = result.inserted_id
    return {"message": "Category created", "category": serialize_doc(data)}


@router.put("/categories/{category_id}")
async def update_category(
    category_id: str,
    updated_data: CategoryUpdate,
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    oid = to_object_id(category_id, "Category")
    update_fields = to_document(updated_data, exclude_unset=True)
    if not update_fields:
        raise HTTPException(status_code=400, detail="No fields provided to update.")
    if "slug" in update_fields:
        await _ensure_unique_slug(db.categories, update_fields["slug"], exclude_id=oid)

    result = await db.categories.update_one({"_id": oid}, {"$set": update_fields})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    category = await db.categories.find_one({"_id": oid})
    return {"message": "Category updated", "category": serialize_doc(category)}


@router.delete("/categories/{category_id}")
async def delete_category(category_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    oid = to_object_id(category_id, "Category")
    result = await db.categories.delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    # Products keep existing without a category
    await db.products.update_many({"category_id": category_id}, {"$set": {"category_id": None}})
    return {"message": "Category deleted"}


# Products
@router.get("/products")
async def list_products(
    category: Optional[str] = None,
    featured: Optional[bool] = None,
    search: Optional[str] = None,
    sort: ProductSort = ProductSort.NEWEST,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db=Depends(get_db),
):
    query = {}
    if category:
        cat = await db.categories.find_one({"slug": category})
        if not cat:
            return {"total_products": 0, "products": []}
        query["category_id"] = str(cat["_id"])
    if featured is not None:
        query["is_featured"] = featured
    if search:
        query["name"] = {"$regex": re.escape(search.strip()), "$options": "i"}

    total = await db.products.count_documents(query)
    products = []
    cursor = db.products.find(query).sort(SORTS[sort]).skip(skip).limit(limit)
    async for product in cursor:
        products.append(serialize_doc(product))

    return {
        "total_products": total,
        "returned_products": len(products),
        "skip": skip,
        "limit": limit,
        "products": products,
    }


@router.get("/products/{product_id}")
async def get_product(product_id: str, db=Depends(get_db)):
    product = serialize_doc(await _get_product_or_404(db, product_id))

    category = None
    if product.get("category_id"):
        try:
            category = await db.categories.find_one({"_id": to_object_id(product["category_id"])})
        except HTTPException:
            category = None
    product["category"] = serialize_doc(category)

    product["variants"] = []
    async for variant in db.product_variants.find({"product_id": product_id}):
        product["variants"].append(serialize_doc(variant))
    return product


@router.post("/products", status_code=201)
async def create_product(product: ProductCreate, admin: dict = Depends(require_admin), db=Depends(get_db)):
    await _ensure_unique_slug(db.products, product.slug)
    data = to_document(product)
    data["created_at"] = utcnow()
    data["updated_at"] = data["created_at"]
    result = await db.products.insert_one(data)
    data["_id"] = result.inserted_id
    return {"message": "Product created", "product": serialize_doc(data)}


@router.put("/products/{product_id}")
async def update_product(
    product_id: str,
    updated_data: ProductUpdate,
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    product = await _get_product_or_404(db, product_id)
    update_fields = to_document(updated_data, exclude_unset=True)
    if not update_fields:
        raise HTTPException(status_code=400, detail="No fields provided to update.")
    if "slug" in update_fields:
        await _ensure_unique_slug(db.products, update_fields["slug"], exclude_id=product["_id"])

    update_fields["updated_at"] = utcnow()
    await db.products.update_one({"_id": product["_id"]}, {"$set": update_fields})
    updated = await db.products.find_one({"_id": product["_id"]})
    return {"message": "Product updated", "product": serialize_doc(updated)}


@router.delete("/products/{product_id}")
async def delete_product(product_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    product = await _get_product_or_404(db, product_id)
    await db.products.delete_one({"_id": product["_id"]})
    await db.product_variants.delete_many({"product_id": product_id})
    await db.cart_items.delete_many({"product_id": product_id})
    await db.wishlist.delete_many({"product_id": product_id})
    logger.info("Product %s deleted by %s", product_id, admin["email"])
    return {"message": "Product deleted"}


# Variants
@router.get("/products/{product_id}/variants")
async def list_variants(product_id: str, db=Depends(get_db)):
    await _get_product_or_404(db, product_id)
    variants = []
    async for variant in db.product_variants.find({"product_id": product_id}).sort("created_at", -1):
        variants.append(serialize_doc(variant))
    return {"product_id": product_id, "variants": variants}


@router.post("/variants", status_code=201)
async def create_variant(variant: VariantCreate, admin: dict = Depends(require_admin), db=Depends(get_db)):
    await _get_product_or_404(db, variant.product_id)
    data = to_document(variant)
    data["created_at"] = utcnow()
    result = await db.product_variants.insert_one(data)
    data["_id"] = result.inserted_id
    return {"message": "Variant created", "variant": serialize_doc(data)}


@router.put("/variants/{variant_id}")
async def update_variant(
    variant_id: str,
    updated_data: VariantUpdate,
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    oid = to_object_id(variant_id, "Variant")
    update_fields = to_document(updated_data, exclude_unset=True)
    if not update_fields:
        raise HTTPException(status_code=400, detail="No fields provided to update.")
    result = await db.product_variants.update_one({"_id": oid}, {"$set": update_fields})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Variant not found")
    return {"message": "Variant updated", "variant": serialize_doc(await db.product_variants.find_one({"_id": oid}))}


@router.delete("/variants/{variant_id}")
async def delete_variant(variant_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    result = await db.product_variants.delete_one({"_id": to_object_id(variant_id, "Variant")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Variant not found")
    return {"message": "Variant deleted"}


# Reviews
@router.get("/products/{product_id}/reviews", response_model=ReviewSummary)
async def list_reviews(product_id: str, db=Depends(get_db)):
    await _get_product_or_404(db, product_id)
    reviews = []
    async for review in db.reviews.find({"product_id": product_id}).sort("created_at", -1):
        reviews.append(serialize_doc(review))

    average = sum(r["rating"] for r in reviews) / len(reviews) if reviews else 0
    return {
        "product_id": product_id,
        "average_rating": round(average, 2),
        "review_count": len(reviews),
        "reviews": reviews,
    }


@router.post("/products/{product_id}/reviews")
async def submit_review(
    product_id: str,
    review: ReviewCreate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    """Create the caller's review, or update it if one already exists."""
    await _get_product_or_404(db, product_id)
    now = utcnow()
    existing = await db.reviews.find_one({"product_id": product_id, "user_id": current_user["id"]})

    if existing:
        await db.reviews.update_one(
            {"_id": existing["_id"]},
            {"$set": {"rating": review.rating, "comment": review.comment, "updated_at": now}},
        )
        saved = await db.reviews.find_one({"_id": existing["_id"]})
        return {"message": "Review updated", "review": serialize_doc(saved)}

    data = {
        "product_id": product_id,
        "user_id": current_user["id"],
        "reviewer_name": current_user.get("full_name") or current_user["email"],
        "rating": review.rating,
        "comment": review.comment,
        "created_at": now,
        "updated_at": now,
    }
    result = await db.reviews.insert_one(data)
    data["_id"] = result.inserted_id
    return {"message": "Review submitted", "review": serialize_doc(data)}
