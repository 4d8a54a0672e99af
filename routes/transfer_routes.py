from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
import logging

from models.transfer_models import MoneyTransfer, MoneyTransferRequest, TransferStatus, TransferStatusUpdate
from models.notification_models import NotificationType
from dataBase import get_db
from utils import get_current_user, require_admin, serialize_doc, to_document, to_object_id, utcnow
from notification_service import create_notification, notify_admins

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transfers"])


@router.post("/transfers", status_code=201, response_model=MoneyTransfer)
async def create_transfer(
    transfer: MoneyTransferRequest,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    now = utcnow()
    data = to_document(transfer)
    data.update({
        "user_id": current_user["id"],
        "transfer_type": "local",
        "status": TransferStatus.PENDING.value,
        "created_at": now,
        "updated_at": now,
    })
    result = await db.money_transfers.insert_one(data)
    data["_id"] = result.inserted_id
    transfer_id = str(result.inserted_id)

    await notify_admins(
        db, NotificationType.NEW_TRANSFER,
        "New Money Transfer",
        f"{transfer.sender_full_name} is sending ${transfer.amount:.2f} to {transfer.receiver_full_name}.",
        transfer_id,
    )
    logger.info("Transfer %s requested by %s", transfer_id, current_user["id"])
    return serialize_doc(data)


@router.get("/transfers", response_model=List[MoneyTransfer])
async def my_transfers(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    transfers = []
    async for transfer in db.money_transfers.find({"user_id": current_user["id"]}).sort("created_at", -1):
        transfers.append(serialize_doc(transfer))
    return transfers


@router.get("/admin/transfers", response_model=List[MoneyTransfer])
async def list_transfers(
    status: Optional[TransferStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    query = {"status": status.value} if status else {}
    transfers = []
    async for transfer in db.money_transfers.find(query).sort("created_at", -1).skip(skip).limit(limit):
        transfers.append(serialize_doc(transfer))
    return transfers


@router.put("/transfers/{transfer_id}/status", response_model=MoneyTransfer)
async def update_transfer_status(
    transfer_id: str,
    update: TransferStatusUpdate,
    admin: dict = Depends(require_admin),
    db=Depends(get_db),
):
    if update.status == TransferStatus.PENDING:
        raise HTTPException(status_code=400, detail="A transfer can only be completed or declined")

    oid = to_object_id(transfer_id, "Transfer")
    transfer = await db.money_transfers.find_one({"_id": oid})
    if not transfer:
        raise HTTPException(status_code=404, detail="Transfer not found")
    if transfer["status"] != TransferStatus.PENDING.value:
        raise HTTPException(status_code=400, detail=f"Transfer is already {transfer['status']}")

    await db.money_transfers.update_one(
        {"_id": oid},
        {"$set": {"status": update.status.value, "updated_at": utcnow()}},
    )

    if update.status == TransferStatus.COMPLETED:
        kind, title = NotificationType.TRANSFER_COMPLETED, "Transfer Completed"
    else:
        kind, title = NotificationType.TRANSFER_DECLINED, "Transfer Declined"
    await create_notification(
        db, transfer["user_id"], kind, title,
        f"Your transfer of ${transfer['amount']:.2f} to {transfer['receiver_full_name']} was {update.status.value}.",
        transfer_id,
    )
    logger.info("Transfer %s marked %s by %s", transfer_id, update.status.value, admin["email"])
    return serialize_doc(await db.money_transfers.find_one({"_id": oid}))
