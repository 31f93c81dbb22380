"""
Notification emitter and the per-recipient notification queue.

One call creates one document for one recipient. Callers loop when several
parties need to hear about the same change.
"""

import logging
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException
from pymongo import DESCENDING

from database import create_document, now, parse_object_id, serialize
from schemas import Notification

logger = logging.getLogger(__name__)

COLLECTION = "notification"


def create_notification(db, recipient: str, notification_type: str, title: str, message: str,
                        related_to: Optional[dict] = None, priority: str = "normal",
                        sender: Optional[str] = None) -> dict:
    notification = Notification(
        recipient=recipient,
        sender=sender,
        type=notification_type,
        title=title,
        message=message,
        related_to=related_to,
        priority=priority,
    )
    data = notification.model_dump()
    _id = create_document(db, COLLECTION, data)
    logger.debug("Notification %s (%s) queued for %s", _id, notification_type, recipient)
    return serialize(db[COLLECTION].find_one({"_id": ObjectId(_id)}))


def notify_parties(db, actor_id: str, recipients, **fields) -> list:
    """Notify each (recipient, overrides) pair unless the recipient is absent or is the actor."""
    created = []
    for recipient, overrides in recipients:
        if not recipient or str(recipient) == str(actor_id):
            continue
        created.append(create_notification(db, recipient=str(recipient), **{**fields, **overrides}))
    return created


def report_ref(report: dict) -> dict:
    return {"model": "Report", "id": str(report["_id"])}


def list_for_recipient(db, recipient: str, unread_only: bool = False) -> dict:
    query = {"recipient": recipient}
    if unread_only:
        query["is_read"] = False
    docs = db[COLLECTION].find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
    notifications = [serialize(d) for d in docs]
    unread = db[COLLECTION].count_documents({"recipient": recipient, "is_read": False})
    return {"notifications": notifications, "count": len(notifications), "unread_count": unread}


def _own(db, notification_id: str, recipient: str) -> dict:
    oid = parse_object_id(notification_id, "notification id")
    doc = db[COLLECTION].find_one({"_id": oid, "recipient": recipient})
    if not doc:
        raise HTTPException(status_code=404, detail="Notification not found")
    return doc


def mark_read(db, notification_id: str, recipient: str) -> dict:
    doc = _own(db, notification_id, recipient)
    if not doc.get("is_read"):
        stamp = now()
        db[COLLECTION].update_one({"_id": doc["_id"]}, {"$set": {"is_read": True, "read_at": stamp}})
        doc["is_read"] = True
        doc["read_at"] = stamp
    return serialize(doc)


def mark_all_read(db, recipient: str) -> int:
    res = db[COLLECTION].update_many(
        {"recipient": recipient, "is_read": False},
        {"$set": {"is_read": True, "read_at": now()}},
    )
    return res.modified_count


def delete_notification(db, notification_id: str, recipient: str) -> str:
    doc = _own(db, notification_id, recipient)
    db[COLLECTION].delete_one({"_id": doc["_id"]})
    return str(doc["_id"])
