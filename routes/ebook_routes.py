from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import re

from models.ebook_models import EbookCreate, EbookUpdate
from dataBase import get_db
from utils import get_current_user, require_admin, serialize_doc, to_document, to_object_id, utcnow

router = APIRouter(prefix="/ebooks", tags=["ebooks"])


def serialize_ebook(ebook: dict, include_content: bool = False) -> dict:
    data = serialize_doc(ebook)
    if not include_content:
        # Content is only handed out through /read
        data.pop("content_url", None)
    return data


async def _get_ebook_or_404(db, ebook_id: str) -> dict:
    ebook = await db.ebooks.find_one({"_id": to_object_id(ebook_id, "Ebook")})
    if not ebook:
        raise HTTPException(status_code=404, detail="Ebook not found")
    return ebook


@router.get("")
async def list_ebooks(
    search: Optional[str] = None,
    genre: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db=Depends(get_db),
):
    query = {}
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [{"title": pattern}, {"author": pattern}]
    if genre and genre != "all":
        query["genre"] = genre

    ebooks = []
    async for ebook in db.ebooks.find(query).sort("title", 1).skip(skip).limit(limit):
        ebooks.append(serialize_ebook(ebook))
    return {"total_ebooks": await db.ebooks.count_documents(query), "ebooks": ebooks}


@router.get("/genres")
async def list_genres(db=Depends(get_db)):
    genres = await db.ebooks.distinct("genre")
    genres = sorted(g for g in genres if g and g.strip())
    return {"total_genres": len(genres), "genres": genres}


@router.get("/library")
async def my_library(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    library = []
    async for entry in db.user_ebooks.find({"user_id": current_user["id"]}).sort("purchased_at", -1):
        ebook = await db.ebooks.find_one({"_id": to_object_id(entry["ebook_id"], "Ebook")})
        if ebook:
            library.append({**serialize_doc(entry), "ebook": serialize_ebook(ebook)})
    return {"total_ebooks": len(library), "library": library}


@router.get("/{ebook_id}")
async def get_ebook(ebook_id: str, db=Depends(get_db)):
    return serialize_ebook(await _get_ebook_or_404(db, ebook_id))


@router.post("/{ebook_id}/purchase", status_code=201)
async def purchase_ebook(ebook_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    ebook = await _get_ebook_or_404(db, ebook_id)
    if await db.user_ebooks.find_one({"user_id": current_user["id"], "ebook_id": ebook_id}):
        raise HTTPException(status_code=400, detail="This ebook is already in your library")

    entry = {"user_id": current_user["id"], "ebook_id": ebook_id, "purchased_at": utcnow()}
    result = await db.user_ebooks.insert_one(entry)
    entry["_id"] = result.inserted_id
    return {
        "message": f"\"{ebook['title']}\" added to your library!",
        "charged": 0 if ebook.get("is_free") else ebook.get("price", 0),
        "purchase": serialize_doc(entry),
    }


@router.get("/{ebook_id}/read")
async def read_ebook(ebook_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    ebook = await _get_ebook_or_404(db, ebook_id)
    owned = await db.user_ebooks.find_one({"user_id": current_user["id"], "ebook_id": ebook_id})
    if not owned:
        raise HTTPException(status_code=403, detail="Purchase this ebook to read it")
    if not ebook.get("content_url"):
        raise HTTPException(status_code=404, detail="This ebook has no content yet")
    return serialize_ebook(ebook, include_content=True)


@router.post("", status_code=201)
async def create_ebook(ebook: EbookCreate, admin: dict = Depends(require_admin), db=Depends(get_db)):
    data = to_document(ebook)
    data["created_at"] = utcnow()
    result = await db.ebooks.insert_one(data)
    data["_id"] = result.inserted_id
    return {"message": "Ebook created", "ebook": serialize_ebook(data, include_content=True)}


@router.put("/{ebook_id}")
async def update_ebook(
    ebook_id: str,
    updated_data: EbookUpdate,
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    ebook = await _get_ebook_or_404(db, ebook_id)
    update_fields = to_document(updated_data, exclude_unset=True)
    if not update_fields:
        raise HTTPException(status_code=400, detail="No fields provided to update.")
    await db.ebooks.update_one({"_id": ebook["_id"]}, {"$set": update_fields})
    updated = await db.ebooks.find_one({"_id": ebook["_id"]})
    return {"message": "Ebook updated", "ebook": serialize_ebook(updated, include_content=True)}


@router.delete("/{ebook_id}")
async def delete_ebook(ebook_id: str, admin: dict = Depends(require_admin), db=Depends(get_db)):
    ebook = await _get_ebook_or_404(db, ebook_id)
    await db.ebooks.delete_one({"_id": ebook["_id"]})
    await db.user_ebooks.delete_many({"ebook_id": ebook_id})
    return {"message": "Ebook deleted"}
