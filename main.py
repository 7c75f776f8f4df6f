import logging
import os
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

import auth_service
import comment_tree
import social
from auth_service import get_current_user, optional_user
from database import JsonStore, get_store
from errors import ServiceError, ValidationError
from schemas import (
    CommentCreate,
    CommentUpdate,
    LikeRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordConfirmRequest,
    ResetPasswordRequest,
    User,
    VerifyEmailRequest,
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PUBLIC_DIR = os.getenv("PUBLIC_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "public"))

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("api")

app = FastAPI(title="Test Yourself API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# avatar images
app.mount("/public", StaticFiles(directory=PUBLIC_DIR, check_dir=False), name="public")


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.error, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    error = ValidationError("; ".join(problems) or None)
    return JSONResponse(status_code=error.status_code, content={"error": error.error, "message": error.message})


@app.get("/")
def root():
    return {"message": "Test Yourself backend running"}


# -------------------- Auth --------------------

@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest, store: JsonStore = Depends(get_store)):
    return auth_service.register(store, payload.name, payload.email, payload.password)


@app.post("/api/auth/login")
def login(payload: LoginRequest, store: JsonStore = Depends(get_store)):
    return auth_service.login(store, payload.email, payload.password)


@app.post("/api/auth/refresh")
def refresh(payload: RefreshRequest, store: JsonStore = Depends(get_store)):
    return auth_service.refresh(store, payload.refresh_token)


@app.get("/api/auth/me")
def me(current: User = Depends(get_current_user)):
    return {"user": auth_service.to_user_response(current)}


@app.post("/api/auth/verify-email")
def verify_email(payload: VerifyEmailRequest, store: JsonStore = Depends(get_store)):
    return auth_service.verify_email(store, payload.token)


@app.post("/api/auth/reset-password")
def reset_password(payload: ResetPasswordRequest, store: JsonStore = Depends(get_store)):
    return auth_service.request_password_reset(store, payload.email)


@app.post("/api/auth/reset-password/confirm")
def reset_password_confirm(payload: ResetPasswordConfirmRequest, store: JsonStore = Depends(get_store)):
    return auth_service.confirm_password_reset(store, payload.token, payload.new_password)


# -------------------- Users --------------------

@app.get("/api/users")
def list_users(store: JsonStore = Depends(get_store)):
    return social.list_users(store)


@app.get("/api/users/{user_id}")
def get_user(user_id: str, store: JsonStore = Depends(get_store)):
    return social.get_user(store, user_id)


@app.get("/api/users/{user_id}/followers")
def list_followers(user_id: str, store: JsonStore = Depends(get_store)):
    return social.list_followers(store, user_id)


@app.get("/api/users/{user_id}/following")
def list_following(user_id: str, store: JsonStore = Depends(get_store)):
    return social.list_following(store, user_id)


@app.post("/api/users/{user_id}/follow")
def follow(user_id: str, current: User = Depends(get_current_user), store: JsonStore = Depends(get_store)):
    return social.follow_user(store, current.id, user_id)


@app.delete("/api/users/{user_id}/follow")
def unfollow(user_id: str, current: User = Depends(get_current_user), store: JsonStore = Depends(get_store)):
    return social.unfollow_user(store, current.id, user_id)


# -------------------- Tests --------------------

@app.get("/api/user-tests")
def list_user_tests(store: JsonStore = Depends(get_store)):
    return social.list_user_tests(store)


@app.post("/api/user-tests", status_code=201)
def create_user_test(
    test: Dict[str, Any] = Body(...),
    current: Optional[User] = Depends(optional_user),
    store: JsonStore = Depends(get_store),
):
    saved = social.create_user_test(store, test, owner=current)
    return {"message": "Test saved successfully", "test": saved}


@app.delete("/api/user-tests/{test_id}")
def delete_user_test(test_id: str, store: JsonStore = Depends(get_store)):
    social.delete_user_test(store, test_id)
    return {"message": "Test deleted successfully"}


@app.get("/api/tests")
def list_tests(store: JsonStore = Depends(get_store)):
    return social.list_tests(store)


@app.get("/api/tests/{test_id}")
def get_test(test_id: str, store: JsonStore = Depends(get_store)):
    return social.get_test(store, test_id)


@app.post("/api/tests/{test_id}/like")
def like_test(
    test_id: str,
    payload: Optional[LikeRequest] = None,
    current: Optional[User] = Depends(optional_user),
    store: JsonStore = Depends(get_store),
):
    user_id = (payload.user_id if payload else None) or (current.id if current else None)
    result = social.toggle_test_like(store, test_id, user_id)
    return {"message": "Like toggled successfully", **result}


# -------------------- Test comments --------------------

@app.get("/api/tests/{test_id}/comments")
def list_test_comments(test_id: str, store: JsonStore = Depends(get_store)):
    return comment_tree.list_comments(store, test_id)


@app.post("/api/tests/{test_id}/comments", status_code=201)
def add_test_comment(
    test_id: str,
    payload: CommentCreate,
    current: Optional[User] = Depends(optional_user),
    store: JsonStore = Depends(get_store),
):
    author_id = payload.author_id or (current.id if current else None)
    return comment_tree.add_comment(store, test_id, author_id, payload.body, payload.parent_id)


@app.put("/api/tests/{test_id}/comments/{comment_id}")
def update_test_comment(test_id: str, comment_id: str, payload: CommentUpdate, store: JsonStore = Depends(get_store)):
    comment = comment_tree.edit_comment(store, comment_id, payload.body)
    return {"message": "Comment updated successfully", "comment": comment}


@app.delete("/api/tests/{test_id}/comments/{comment_id}")
def delete_test_comment(test_id: str, comment_id: str, store: JsonStore = Depends(get_store)):
    comment_tree.delete_comment(store, comment_id)
    return {"message": "Comment deleted successfully"}


@app.post("/api/tests/{test_id}/comments/{comment_id}/like")
def like_test_comment(
    test_id: str,
    comment_id: str,
    payload: Optional[LikeRequest] = None,
    current: Optional[User] = Depends(optional_user),
    store: JsonStore = Depends(get_store),
):
    user_id = (payload.user_id if payload else None) or (current.id if current else None)
    comment = comment_tree.toggle_comment_like(store, comment_id, user_id)
    return {"message": "Like toggled successfully", "comment": comment}


# -------------------- Posts --------------------

@app.get("/api/posts")
def list_posts(store: JsonStore = Depends(get_store)):
    return social.list_posts(store)


@app.get("/api/comments")
def list_comments(post_id: Optional[str] = Query(None, alias="postId"), store: JsonStore = Depends(get_store)):
    return social.list_post_comments(store, post_id)


@app.get("/test")
def test_database(store: JsonStore = Depends(get_store)):
    """Check that the data directory is reachable and list its collections"""
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    if os.path.isdir(store.data_dir):
        response["database_name"] = store.name
        response["connection_status"] = "Connected"
        response["collections"] = store.list_collection_names()[:10]
        if os.access(store.data_dir, os.W_OK):
            response["database"] = "✅ Connected & Working"
        else:
            response["database"] = "⚠️  Available but read-only"
    else:
        response["database"] = "⚠️  Data directory not created yet"

    response["database_url"] = "✅ Set" if os.getenv("DATA_DIR") else "❌ Not Set"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
