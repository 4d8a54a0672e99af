from contextlib import asynccontextmanager
import logging
import os

from bson import ObjectId
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from pymongo.errors import PyMongoError

from models.register_model import RegisterUser
from models.login_model import LoginUser
from models.profile_model import UserProfile
from models.update_profile_model import UpdateUserProfile
from models.password_model import ChangePassword, ForgotPassword, ResetPassword
from dataBase import db as default_db, ensure_indexes, get_db
from utils import (
    create_access_token,
    create_password_reset_token,
    get_current_user,
    hash_password,
    password_reset_user_id,
    serialize_doc,
    to_document,
    utcnow,
    verify_password,
    verify_password_reset_token,
    ACCESS_TOKEN_EXPIRE_MINUTES,
)
from email_service import send_password_reset_email, send_welcome_email
from routes import (
    admin_routes,
    assistant_routes,
    cart_routes,
    discount_routes,
    ebook_routes,
    exchange_routes,
    notification_routes,
    order_routes,
    product_routes,
    transfer_routes,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def admin_emails() -> set:
    return {
        email.strip().lower()
        for email in os.getenv("ADMIN_EMAILS", "").split(",")
        if email.strip()
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await ensure_indexes(default_db)
    except PyMongoError as e:
        logger.error("Could not ensure database indexes: %s", e)
    yield


app = FastAPI(title="Ghazal Library API", version="1.0.0", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(product_routes)
app.include_router(cart_routes)
app.include_router(order_routes)
app.include_router(discount_routes)
app.include_router(ebook_routes)
app.include_router(exchange_routes)
app.include_router(transfer_routes)
app.include_router(notification_routes)
app.include_router(admin_routes)
app.include_router(assistant_routes)


@app.get("/")
def root():
    return RedirectResponse(url="/docs")


def serialize_user(user: dict) -> dict:
    data = serialize_doc(user)
    data.setdefault("role", "user")
    return data


# Authentication Routes
@app.post("/register", status_code=201)
async def register_user(user: RegisterUser, background_tasks: BackgroundTasks, db=Depends(get_db)):
    email = user.email.lower()
    try:
        existing_user = await db.users.find_one({"email": email})
        if existing_user:
            raise HTTPException(status_code=400, detail="This email is already registered. Please sign in.")

        user_dict = to_document(user)
        user_dict["email"] = email
        user_dict["password"] = hash_password(user.password)
        user_dict["role"] = "admin" if email in admin_emails() else "user"
        user_dict["avatar_url"] = None
        user_dict["created_at"] = utcnow()
        user_dict["updated_at"] = user_dict["created_at"]

        result = await db.users.insert_one(user_dict)
        created_user = await db.users.find_one({"_id": result.inserted_id})
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Registration failed for %s", email)
        raise HTTPException(status_code=500, detail=str(e))

    background_tasks.add_task(send_welcome_email, email, user.full_name)
    logger.info("Registered user %s with role %s", email, user_dict["role"])
    return {
        "message": "Account created successfully!",
        "user": serialize_user(created_user),
    }


@app.post("/login")
async def login_user(user: LoginUser, db=Depends(get_db)):
    try:
        existing_user = await db.users.find_one({"email": user.email.lower()})
        if not existing_user or not verify_password(user.password, existing_user["password"]):
            raise HTTPException(status_code=401, detail="Invalid email or password")

        # Create JWT access token
        token_data = {
            "user_id": str(existing_user["_id"]),
            "email": existing_user["email"],
            "role": existing_user.get("role", "user"),
        }
        access_token = create_access_token(data=token_data)

        return {
            "message": "Welcome back!",
            "access_token": access_token,
            "token_type": "bearer",
            "user_id": str(existing_user["_id"]),
            "full_name": existing_user.get("full_name"),
            "email": existing_user["email"],
            "role": existing_user.get("role", "user"),
            "expires_in": ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Login failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/users/me", response_model=UserProfile)
async def get_user_profile(current_user: dict = Depends(get_current_user)):
    return serialize_user(current_user)


@app.put("/users/me", response_model=UserProfile)
async def update_user_profile(
    updated_data: UpdateUserProfile,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    update_dict = to_document(updated_data, exclude_unset=True)
    if not update_dict:
        raise HTTPException(status_code=400, detail="No fields provided for update")

    update_dict["updated_at"] = utcnow()
    await db.users.update_one({"_id": current_user["_id"]}, {"$set": update_dict})

    updated_user = await db.users.find_one({"_id": current_user["_id"]})
    return serialize_user(updated_user)


# Password Routes
@app.post("/password/forgot")
async def forgot_password(request: ForgotPassword, background_tasks: BackgroundTasks, db=Depends(get_db)):
    email = request.email.lower()
    user = await db.users.find_one({"email": email})
    if user:
        token = create_password_reset_token(user)
        background_tasks.add_task(send_password_reset_email, email, user.get("full_name") or email, token)
        logger.info("Password reset requested for %s", email)
    else:
        logger.info("Password reset requested for unknown email %s", email)
    return {"message": "If an account exists for this email, a reset link has been sent."}


@app.post("/password/reset")
async def reset_password(request: ResetPassword, db=Depends(get_db)):
    user_id = password_reset_user_id(request.token)
    user = None
    if user_id and ObjectId.is_valid(user_id):
        user = await db.users.find_one({"_id": ObjectId(user_id)})
    if not verify_password_reset_token(request.token, user):
        raise HTTPException(status_code=400, detail="This reset link is invalid or has expired")

    await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(request.new_password), "updated_at": utcnow()}},
    )
    logger.info("Password reset for %s", user["email"])
    return {"message": "Password updated. You can now sign in."}


@app.put("/users/me/password")
async def change_password(
    request: ChangePassword,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    if not verify_password(request.current_password, current_user["password"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    await db.users.update_one(
        {"_id": current_user["_id"]},
        {"$set": {"password": hash_password(request.new_password), "updated_at": utcnow()}},
    )
    return {"message": "Password updated successfully"}
