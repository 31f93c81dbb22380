import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import jwt, JWTError
from starlette.exceptions import HTTPException as StarletteHTTPException

import notifications
import reports
from database import db, get_db, parse_object_id, serialize
from schemas import (
    AdminMessage,
    Assignment,
    BulkAssign,
    BulkDelete,
    BulkStatusUpdate,
    CommentCreate,
    DeleteRequest,
    MessageCreate,
    ReportCreate,
    ReportUpdate,
    StatusChange,
)

APP_NAME = "Civic Issue Reporting API"
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change")
JWT_ALG = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", str(60 * 24 * 14)))  # 14 days
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title=APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error envelope ----------

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail},
                        headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid request", "error": {"details": jsonable_encoder(exc.errors())}},
    )


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


# ---------- Auth Helpers ----------

def create_token(user_id: str, role: str):
    payload = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=JWT_EXPIRE_MINUTES),
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def verify_token(authorization: Optional[str] = Header(None)):
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    try:
        scheme, token = authorization.split(" ", 1)
        if scheme.lower() != "bearer":
            raise ValueError("Invalid auth scheme")
        data = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
        return {"id": data.get("sub"), "role": data.get("role")}
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def current_user(claims=Depends(verify_token), database=Depends(get_db)):
    try:
        user = database["user"].find_one({"_id": parse_object_id(claims["id"])})
    except HTTPException:
        user = None
    if not user:
        raise HTTPException(status_code=401, detail="User no longer exists")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account disabled")
    return user


def require_admin(user=Depends(current_user)):
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Administrator access required")
    return user


# ---------- Basic routes ----------

@app.get("/")
def root():
    return {"message": f"{APP_NAME} running"}


@app.get("/test")
def test_database():
    info = {
        "backend": "running",
        "database": "disconnected",
        "collections": [],
    }
    try:
        if db is not None:
            info["database"] = "connected"
            info["collections"] = db.list_collection_names()[:10]
    except Exception as e:
        info["database"] = f"error: {str(e)[:80]}"
    return info


# ---------- Report endpoints ----------

@app.post("/reports", status_code=201)
def create_report(body: ReportCreate, user=Depends(current_user), database=Depends(get_db)):
    report = reports.create_report(database, body, user)
    return {"success": True, "message": "Report submitted", "data": {"report": report}}


@app.get("/reports")
def list_reports(status: Optional[str] = None, category: Optional[str] = None, priority: Optional[str] = None,
                 assigned_to: Optional[str] = None, submitted_by: Optional[str] = None,
                 limit: Optional[int] = None, user=Depends(current_user), database=Depends(get_db)):
    docs = reports.list_reports(database, status, category, priority, assigned_to, submitted_by, limit)
    return {"success": True, "count": len(docs), "data": {"reports": docs}}


@app.get("/reports/{report_id}")
def get_report(report_id: str, user=Depends(current_user), database=Depends(get_db)):
    report = reports.load_report(database, report_id)
    return {"success": True, "data": {"report": serialize(report)}}


@app.patch("/reports/{report_id}")
def update_report(report_id: str, body: ReportUpdate, user=Depends(current_user), database=Depends(get_db)):
    report = reports.update_report(database, report_id, body, user)
    return {"success": True, "message": "Report updated successfully", "data": {"report": report}}


@app.patch("/reports/{report_id}/status")
def change_report_status(report_id: str, body: StatusChange, user=Depends(current_user),
                         database=Depends(get_db)):
    report = reports.change_status(database, report_id, body, user)
    return {"success": True, "message": "Report status updated", "data": {"report": report}}


@app.patch("/reports/{report_id}/assign")
def assign_report(report_id: str, body: Assignment, user=Depends(require_admin), database=Depends(get_db)):
    report = reports.assign_report(database, report_id, body.assignee_id, body.comment, user)
    return {"success": True, "message": "Report assigned successfully", "data": {"report": report}}


@app.delete("/reports/{report_id}")
def delete_report(report_id: str, body: Optional[DeleteRequest] = Body(None), user=Depends(require_admin),
                  database=Depends(get_db)):
    reason = body.reason if body else None
    deleted_id = reports.delete_report(database, report_id, reason, user)
    return {"success": True, "message": "Report successfully deleted", "data": {"reportId": deleted_id}}


@app.post("/reports/{report_id}/comments", status_code=201)
def add_comment(report_id: str, body: CommentCreate, user=Depends(current_user), database=Depends(get_db)):
    comment = reports.add_comment(database, report_id, body.text, user)
    return {"success": True, "data": {"comment": comment}}


@app.get("/reports/{report_id}/comments")
def get_comments(report_id: str, user=Depends(current_user), database=Depends(get_db)):
    return {"success": True, "data": {"comments": reports.get_comments(database, report_id)}}


# ---------- Admin bulk operations ----------

@app.post("/admin/reports/bulk-update-status")
def bulk_update_status(body: BulkStatusUpdate, user=Depends(require_admin), database=Depends(get_db)):
    change = StatusChange(status=body.status, comment=body.comment)
    result = reports.bulk_apply(body.report_ids, lambda rid: reports.change_status(database, rid, change, user))
    return {"success": True, "message": f"Updated {result['processed']} reports", "data": result}


@app.post("/admin/reports/bulk-assign")
def bulk_assign(body: BulkAssign, user=Depends(require_admin), database=Depends(get_db)):
    result = reports.bulk_apply(
        body.report_ids, lambda rid: reports.assign_report(database, rid, body.assignee_id, None, user))
    return {"success": True, "message": f"Assigned {result['processed']} reports", "data": result}


@app.post("/admin/reports/bulk-delete")
def bulk_delete(body: BulkDelete, user=Depends(require_admin), database=Depends(get_db)):
    result = reports.bulk_apply(
        body.report_ids, lambda rid: reports.delete_report(database, rid, body.reason, user))
    return {"success": True, "message": f"Deleted {result['processed']} reports", "data": result}


@app.post("/admin/notifications", status_code=201)
def admin_send_notification(body: AdminMessage, user=Depends(require_admin), database=Depends(get_db)):
    recipient = database["user"].find_one({"_id": parse_object_id(body.user_id, "user ID")})
    if not recipient:
        raise HTTPException(status_code=404, detail="User not found")
    notification = notifications.create_notification(
        database,
        recipient=body.user_id,
        sender=str(user["_id"]),
        notification_type=body.type,
        title=body.subject,
        message=body.message,
        related_to={"model": "User", "id": str(user["_id"])},
        priority=body.priority,
    )
    return {"success": True, "message": "Notification sent successfully", "data": {"notification": notification}}


# ---------- Notification endpoints ----------

@app.get("/notifications")
def list_notifications(unread_only: bool = False, user=Depends(current_user), database=Depends(get_db)):
    data = notifications.list_for_recipient(database, str(user["_id"]), unread_only)
    return {"success": True, "count": data["count"], "data": data}


@app.post("/notifications", status_code=201)
def send_message(body: MessageCreate, user=Depends(current_user), database=Depends(get_db)):
    recipient = database["user"].find_one({"_id": parse_object_id(body.recipient_id, "recipient ID")})
    if not recipient:
        raise HTTPException(status_code=404, detail="Recipient user not found")
    notification = notifications.create_notification(
        database,
        recipient=body.recipient_id,
        sender=str(user["_id"]),
        notification_type=body.notification_type,
        title=body.subject,
        message=body.message,
        related_to={"model": "User", "id": str(user["_id"])},
    )
    return {"success": True, "message": "Notification sent successfully", "data": {"notification": notification}}


@app.patch("/notifications/read-all")
def mark_all_read(user=Depends(current_user), database=Depends(get_db)):
    count = notifications.mark_all_read(database, str(user["_id"]))
    return {"success": True, "message": f"Marked {count} notifications as read", "count": count}


@app.patch("/notifications/{notification_id}/read")
def mark_read(notification_id: str, user=Depends(current_user), database=Depends(get_db)):
    notification = notifications.mark_read(database, notification_id, str(user["_id"]))
    return {"success": True, "data": {"notification": notification}}


@app.delete("/notifications/{notification_id}")
def delete_notification(notification_id: str, user=Depends(current_user), database=Depends(get_db)):
    deleted_id = notifications.delete_notification(database, notification_id, str(user["_id"]))
    return {"success": True, "message": "Notification deleted successfully",
            "data": {"deletedNotificationId": deleted_id}}
