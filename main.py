import logging
import math
import re
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional

import jwt  # PyJWT
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.hash import bcrypt as bcrypt_hasher
from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from database import close_db, create_document, get_db, get_documents, init_db
from schemas import Author as AuthorSchema
from schemas import Comment as CommentSchema
from schemas import ContactMessage as ContactMessageSchema
from schemas import Content as ContentSchema
from schemas import ContentBase
from schemas import Subscriber as SubscriberSchema
from schemas import User as UserSchema

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_db()
    yield
    close_db()


app = FastAPI(title="Portfolio API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------------------------------------------------------
# Envelope + error handlers
# -------------------------------------------------------------------
def ok(data: Any = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation error", "errors": errors},
    )


@app.exception_handler(PyMongoError)
async def database_exception_handler(request: Request, _exc: PyMongoError):
    # handled inside the middleware stack so the response keeps CORS headers
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Server error"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, _exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Server error"})


# -------------------------------------------------------------------
# Utilities
# -------------------------------------------------------------------
def to_str_id(doc: dict) -> dict:
    d = doc.copy()
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            d[k] = v.isoformat()
        elif isinstance(v, ObjectId):
            d[k] = str(v)
        elif isinstance(v, dict):
            d[k] = to_str_id(v)
    return d


def parse_object_id(value: str, detail: str = "Not found") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=404, detail=detail)


def attach_authors(db: Database, docs: List[dict]) -> None:
    ids = {d["author"] for d in docs if isinstance(d.get("author"), ObjectId)}
    authors = {}
    if ids:
        authors = {a["_id"]: a for a in db["author"].find({"_id": {"$in": list(ids)}})}
    for d in docs:
        ref = d.get("author")
        if ref is not None:
            author = authors.get(ref)
            d["author"] = {
                "_id": author["_id"],
                "name": author.get("name"),
                "avatar": author.get("avatar"),
                "bio": author.get("bio"),
            } if author else None


def attach_comment_counts(db: Database, docs: List[dict]) -> None:
    ids = [d["_id"] for d in docs]
    counts: Dict[ObjectId, int] = {}
    if ids:
        pipeline = [
            {"$match": {"contentId": {"$in": ids}}},
            {"$group": {"_id": "$contentId", "count": {"$sum": 1}}},
        ]
        counts = {row["_id"]: row["count"] for row in db["comment"].aggregate(pipeline)}
    for d in docs:
        d["commentsCount"] = counts.get(d["_id"], 0)


def present_contents(db: Database, docs: List[dict]) -> List[dict]:
    """Join authors and comment counts, then make documents JSON friendly."""
    attach_authors(db, docs)
    attach_comment_counts(db, docs)
    return [to_str_id(d) for d in docs]


def resolve_author(db: Database, author_id: Optional[str]) -> Optional[ObjectId]:
    if not author_id:
        return None
    try:
        oid = ObjectId(author_id)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Author not found")
    if not db["author"].find_one({"_id": oid}, {"_id": 1}):
        raise HTTPException(status_code=400, detail="Author not found")
    return oid


def find_content_or_404(db: Database, content_id: str) -> dict:
    oid = parse_object_id(content_id, "Content not found")
    doc = db["content"].find_one({"_id": oid})
    if not doc:
        raise HTTPException(status_code=404, detail="Content not found")
    return doc


def bump_counter(db: Database, content_id: str, field: str, delta: int) -> dict:
    """Atomically add delta to a counter field and return the updated document.

    Decrements only apply while the counter is positive, so counters never
    go below zero.
    """
    oid = parse_object_id(content_id, "Content not found")
    query: Dict[str, Any] = {"_id": oid}
    if delta < 0:
        query[field] = {"$gt": 0}
    doc = db["content"].find_one_and_update(
        query,
        {"$inc": {field: delta}, "$set": {"updatedAt": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        doc = db["content"].find_one({"_id": oid})
        if doc is None:
            raise HTTPException(status_code=404, detail="Content not found")
    return doc


# -------------------------------------------------------------------
# Auth/JWT utilities
# -------------------------------------------------------------------
security = HTTPBearer(auto_error=False)


def create_jwt(payload: dict, minutes: Optional[int] = None) -> str:
    if minutes is None:
        minutes = config.JWT_EXPIRE_MIN
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=minutes)
    to_encode = {**payload, "iat": int(now.timestamp()), "exp": int(exp.timestamp())}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm="HS256")


def decode_jwt(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def public_user(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "username": user.get("username"),
        "email": user.get("email"),
        "role": user.get("role", "user"),
    }


def current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Database = Depends(get_db),
) -> dict:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    data = decode_jwt(credentials.credentials)
    try:
        user_id = ObjectId(data.get("sub"))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db["user"].find_one({"_id": user_id})
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_admin(user: dict = Depends(current_user)) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin role required")
    return user


# -------------------------------------------------------------------
# Request models
# -------------------------------------------------------------------
class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterIn(BaseModel):
    username: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8)


class AuthorIn(BaseModel):
    name: str = Field(..., min_length=1)
    avatar: Optional[str] = None
    bio: Optional[str] = None


class LikeIn(BaseModel):
    action: Literal["like", "unlike"]


class BookmarkIn(BaseModel):
    action: Literal["bookmark", "unbookmark"]


class CommentIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    text: str = Field(..., validation_alias=AliasChoices("text", "comment"))

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Comment cannot be empty")
        return v


class SubscribeIn(BaseModel):
    email: str = ""


class ContactIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    message: str = Field(..., min_length=1)


EMAIL_RE = re.compile(r"\S+@\S+\.\S+")


# -------------------------------------------------------------------
# Root + health
# -------------------------------------------------------------------
@app.get("/")
def root():
    return ok({"app": "Portfolio API", "status": "ok"})


@app.get("/test")
def database_status():
    response: Dict[str, Any] = {
        "backend": "running",
        "database": "not available",
        "database_name": config.DATABASE_NAME,
        "collections": [],
    }
    try:
        db = get_db()
    except HTTPException:
        return ok(response)
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "connected"
    except PyMongoError as e:
        response["database"] = f"error: {str(e)[:50]}"
    return ok(response)


# -------------------------------------------------------------------
# Auth endpoints
# -------------------------------------------------------------------
@app.post("/api/auth")
def login(data: LoginIn, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": data.email.lower()})
    password_ok = False
    if user and user.get("passwordHash"):
        try:
            password_ok = bcrypt_hasher.verify(data.password, user["passwordHash"])
        except ValueError:
            password_ok = False
    if not password_ok:
        logger.warning("Failed login for %s", data.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_jwt({"sub": str(user["_id"]), "role": user.get("role", "user")})
    return ok({"token": token, "user": public_user(user)})


@app.post("/api/auth/register", status_code=201)
def register(data: RegisterIn, db: Database = Depends(get_db)):
    user = UserSchema(
        username=data.username,
        email=data.email.lower(),
        password_hash=bcrypt_hasher.hash(data.password),
    )
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already registered")
    logger.info("Registered user %s", user_id)
    return ok(public_user(db["user"].find_one({"_id": ObjectId(user_id)})))


@app.get("/api/auth/me")
def me(user: dict = Depends(current_user)):
    return ok(public_user(user))


# -------------------------------------------------------------------
# Authors
# -------------------------------------------------------------------
@app.get("/api/authors")
def list_authors(db: Database = Depends(get_db)):
    items = get_documents(db, "author", sort=[("name", 1)])
    return ok([to_str_id(a) for a in items])


@app.get("/api/authors/{author_id}")
def get_author(author_id: str, db: Database = Depends(get_db)):
    oid = parse_object_id(author_id, "Author not found")
    author = db["author"].find_one({"_id": oid})
    if not author:
        raise HTTPException(status_code=404, detail="Author not found")
    return ok(to_str_id(author))


@app.post("/api/authors", status_code=201)
def create_author(payload: AuthorIn, db: Database = Depends(get_db), _admin: dict = Depends(require_admin)):
    author_id = create_document(db, "author", AuthorSchema(**payload.model_dump()))
    logger.info("Created author %s", author_id)
    return ok(to_str_id(db["author"].find_one({"_id": ObjectId(author_id)})))


# -------------------------------------------------------------------
# Content
# -------------------------------------------------------------------
@app.get("/api/content")
def list_content(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    content_type: Literal["all", "Article", "Video", "Project", "Repository"] = Query("all", alias="type"),
    db: Database = Depends(get_db),
):
    filter_q = {} if content_type == "all" else {"type": content_type}
    docs = list(
        db["content"].find(filter_q).sort("date", -1).skip((page - 1) * limit).limit(limit)
    )
    total = db["content"].count_documents(filter_q)
    return ok(
        present_contents(db, docs),
        pagination={"total": total, "page": page, "limit": limit, "pages": math.ceil(total / limit)},
    )


@app.get("/api/content/search")
def search_content(q: str = Query(..., min_length=1), db: Database = Depends(get_db)):
    pattern = {"$regex": re.escape(q), "$options": "i"}
    filter_q = {"$or": [{"title": pattern}, {"subheading": pattern}, {"category": pattern}]}
    docs = list(db["content"].find(filter_q).sort("date", -1))
    return ok(present_contents(db, docs))


@app.post("/api/content", status_code=201)
def create_content(payload: ContentBase, db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    content = ContentSchema(**payload.model_dump(exclude_none=True))
    doc = content.model_dump(by_alias=True)
    doc["author"] = resolve_author(db, payload.author)
    content_id = create_document(db, "content", doc)
    logger.info("Content %s created by %s", content_id, admin["_id"])
    created = db["content"].find_one({"_id": ObjectId(content_id)})
    return ok(present_contents(db, [created])[0])


@app.get("/api/content/{content_id}")
def get_content(content_id: str, db: Database = Depends(get_db)):
    doc = find_content_or_404(db, content_id)
    related = list(
        db["content"]
        .find({"_id": {"$ne": doc["_id"]}, "category": doc.get("category"), "type": doc.get("type")})
        .sort("date", -1)
        .limit(5)
    )
    return ok(present_contents(db, [doc])[0], relatedContent=present_contents(db, related))


@app.get("/api/content/{content_id}/view")
def view_content(content_id: str, db: Database = Depends(get_db)):
    # every read counts, no per-viewer dedup
    doc = bump_counter(db, content_id, "views", 1)
    return ok(present_contents(db, [doc])[0])


@app.put("/api/content/{content_id}")
def update_content(
    content_id: str,
    payload: ContentBase,
    db: Database = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    oid = parse_object_id(content_id, "Content not found")
    fields = payload.model_dump(by_alias=True)
    if fields.get("date") is None:
        fields.pop("date", None)
    fields["author"] = resolve_author(db, payload.author)
    fields["updatedAt"] = datetime.now(timezone.utc)
    doc = db["content"].find_one_and_update(
        {"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER
    )
    if not doc:
        raise HTTPException(status_code=404, detail="Content not found")
    logger.info("Content %s updated by %s", content_id, admin["_id"])
    return ok(present_contents(db, [doc])[0])


@app.delete("/api/content/{content_id}")
def delete_content(content_id: str, db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    oid = parse_object_id(content_id, "Content not found")
    result = db["content"].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Content not found")
    logger.info("Content %s deleted by %s", content_id, admin["_id"])
    return ok({})


@app.post("/api/content/{content_id}/toggle-like")
def toggle_like(content_id: str, payload: LikeIn, db: Database = Depends(get_db)):
    delta = 1 if payload.action == "like" else -1
    doc = bump_counter(db, content_id, "likes", delta)
    return ok({"likes": doc.get("likes", 0)})


@app.post("/api/content/{content_id}/toggle-bookmark")
def toggle_bookmark(content_id: str, payload: BookmarkIn, db: Database = Depends(get_db)):
    delta = 1 if payload.action == "bookmark" else -1
    doc = bump_counter(db, content_id, "bookmarks", delta)
    return ok({"bookmarks": doc.get("bookmarks", 0)})


# -------------------------------------------------------------------
# Comments
# -------------------------------------------------------------------
@app.get("/api/content/{content_id}/comments")
def list_comments(content_id: str, db: Database = Depends(get_db)):
    # no existence check on the parent, comments of deleted content stay readable
    oid = parse_object_id(content_id, "Content not found")
    items = get_documents(db, "comment", {"contentId": oid}, sort=[("date", -1)])
    return ok([to_str_id(c) for c in items])


@app.post("/api/content/{content_id}/comments", status_code=201)
def add_comment(content_id: str, payload: CommentIn, db: Database = Depends(get_db)):
    parent = find_content_or_404(db, content_id)
    comment = CommentSchema(
        content_id=str(parent["_id"]),
        name=(payload.name or "").strip() or "Anonymous",
        email=payload.email,
        text=payload.text,
    )
    doc = comment.model_dump(by_alias=True)
    doc["contentId"] = parent["_id"]
    comment_id = create_document(db, "comment", doc)
    logger.info("Comment %s added to content %s", comment_id, content_id)
    return ok(to_str_id(db["comment"].find_one({"_id": ObjectId(comment_id)})))


@app.get("/api/comments/{comment_id}")
def get_comment(comment_id: str, db: Database = Depends(get_db)):
    oid = parse_object_id(comment_id, "Comment not found")
    comment = db["comment"].find_one({"_id": oid})
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    return ok(to_str_id(comment))


@app.put("/api/comments/{comment_id}")
def update_comment(
    comment_id: str,
    payload: CommentIn,
    db: Database = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    oid = parse_object_id(comment_id, "Comment not found")
    fields = {
        "name": (payload.name or "").strip() or "Anonymous",
        "email": payload.email,
        "text": payload.text,
        "updatedAt": datetime.now(timezone.utc),
    }
    comment = db["comment"].find_one_and_update(
        {"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER
    )
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    logger.info("Comment %s updated by %s", comment_id, admin["_id"])
    return ok(to_str_id(comment))


@app.delete("/api/comments/{comment_id}")
def delete_comment(comment_id: str, db: Database = Depends(get_db), admin: dict = Depends(require_admin)):
    oid = parse_object_id(comment_id, "Comment not found")
    result = db["comment"].delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Comment not found")
    logger.info("Comment %s deleted by %s", comment_id, admin["_id"])
    return ok({})


# -------------------------------------------------------------------
# Newsletter + contact
# -------------------------------------------------------------------
@app.post("/api/newsletter/subscribe", status_code=201)
def subscribe(payload: SubscribeIn, db: Database = Depends(get_db)):
    email = payload.email.strip().lower()
    if not EMAIL_RE.fullmatch(email):
        raise HTTPException(status_code=400, detail="Invalid email address")
    try:
        subscriber_id = create_document(db, "subscriber", SubscriberSchema(email=email))
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already subscribed")
    logger.info("New newsletter subscriber %s", subscriber_id)
    return ok(to_str_id(db["subscriber"].find_one({"_id": ObjectId(subscriber_id)})))


@app.post("/api/contact")
def contact(payload: ContactIn, db: Database = Depends(get_db)):
    message = ContactMessageSchema(name=payload.name, email=payload.email, message=payload.message)
    message_id = create_document(db, "contactmessage", message)
    logger.info("Contact message %s received", message_id)
    return ok(message="Message sent successfully")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
