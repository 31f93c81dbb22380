"""
Report lifecycle: the timeline mutator and the report controllers built on it.

A report's `status` always mirrors the status of its newest timeline entry.
Every write goes through a single atomic Mongo update so concurrent requests
cannot drop each other's timeline entries.
"""

import logging
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException
from pymongo import DESCENDING, ReturnDocument

from database import create_document, get_documents, now, parse_object_id, serialize
from notifications import notify_parties, report_ref
from schemas import Report, normalize_status

logger = logging.getLogger(__name__)

COLLECTION = "report"
DEFAULT_DELETE_REASON = "Report deleted by administrator"
ASSIGNABLE_ROLES = ("employee", "admin")
COMMENT_ATTEMPTS = 3


def user_id(user: dict) -> str:
    return str(user["_id"])


def display_name(user: dict) -> str:
    return f"{user.get('first_name', '')} {user.get('last_name', '')}".strip() or "Someone"


def timeline_entry(status: str, comment: Optional[str], actor_id: Optional[str]) -> dict:
    return {
        "id": str(ObjectId()),
        "status": status,
        "comment": comment,
        "updated_by": actor_id,
        "timestamp": now(),
    }


def load_report(db, report_id: str) -> dict:
    report = db[COLLECTION].find_one({"_id": parse_object_id(report_id, "report ID")})
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


# ---------- Timeline mutator ----------

def append_status_event(db, report: dict, raw_status: str, comment: Optional[str], actor_id: Optional[str],
                        extra_set: Optional[dict] = None) -> dict:
    """Append a status entry and set `status` to match, in one write. Returns the updated report."""
    status = normalize_status(raw_status)
    entry = timeline_entry(status, comment, actor_id)
    updated = db[COLLECTION].find_one_and_update(
        {"_id": report["_id"]},
        {
            "$push": {"timeline": entry},
            "$set": {**(extra_set or {}), "status": status, "updated_at": entry["timestamp"]},
            "$inc": {"version": 1},
        },
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="Report not found")
    logger.info("Report %s -> %s by %s", report["_id"], status, actor_id)
    return updated


def stamp_resolved(db, report: dict) -> dict:
    # Only the first resolution is recorded.
    if report.get("status") != "resolved" or report.get("resolved_at"):
        return report
    stamp = now()
    res = db[COLLECTION].update_one({"_id": report["_id"], "resolved_at": None}, {"$set": {"resolved_at": stamp}})
    if res.modified_count:
        report["resolved_at"] = stamp
    return report


# ---------- Controllers ----------

def create_report(db, body, user: dict) -> dict:
    actor = user_id(user)
    report = Report(
        **body.model_dump(),
        submitted_by=actor,
        timeline=[timeline_entry("submitted", "Report submitted", actor)],
    )
    _id = create_document(db, COLLECTION, report.model_dump())
    logger.info("Report %s submitted by %s", _id, actor)
    return serialize(db[COLLECTION].find_one({"_id": ObjectId(_id)}))


def list_reports(db, status: Optional[str] = None, category: Optional[str] = None,
                 priority: Optional[str] = None, assigned_to: Optional[str] = None,
                 submitted_by: Optional[str] = None, limit: Optional[int] = None) -> list:
    query = {}
    if status:
        query["status"] = normalize_status(status)
    if category:
        query["category"] = category
    if priority:
        query["priority"] = priority
    if assigned_to:
        query["assigned_to"] = assigned_to
    if submitted_by:
        query["submitted_by"] = submitted_by
    docs = get_documents(db, COLLECTION, query, limit, sort=[("created_at", DESCENDING), ("_id", DESCENDING)])
    return [serialize(d) for d in docs]


def update_report(db, report_id: str, body, user: dict) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Only administrators can update report details")

    report = load_report(db, report_id)
    actor = user_id(user)

    fields = {}
    for name in ("title", "description", "category", "priority"):
        value = getattr(body, name)
        if value:
            fields[name] = value

    if body.location:
        location = report.get("location") or {}
        if body.location.address:
            address = {**(location.get("address") or {}),
                       **body.location.address.model_dump(exclude_none=True)}
            fields["location.address"] = address
        coords = body.location.coordinates
        if coords and len(coords) == 2:
            fields["location.coordinates"] = coords

    if body.status and body.status != report.get("status"):
        comment = f"Status updated to {body.status} by admin during report edit"
        report = append_status_event(db, report, body.status, comment, actor, extra_set=fields)
        report = stamp_resolved(db, report)
    elif fields:
        report = db[COLLECTION].find_one_and_update(
            {"_id": report["_id"]},
            {"$set": {**fields, "updated_at": now()}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
    logger.info("Report %s edited by %s (%s)", report["_id"], actor, ", ".join(sorted(fields)) or "no field changes")

    title = f"Report Updated: {report['title']}"
    notify_parties(
        db, actor,
        [
            (report.get("submitted_by"), {"message": "Your report has been updated by an administrator"}),
            (report.get("assigned_to"), {"message": "A report assigned to you has been updated by an administrator"}),
        ],
        notification_type="report_status", title=title, related_to=report_ref(report),
    )
    return serialize(report)


def change_status(db, report_id: str, body, user: dict) -> dict:
    report = load_report(db, report_id)
    actor = user_id(user)
    role = user.get("role")
    if role != "admin" and not (role == "employee" and report.get("assigned_to") == actor):
        raise HTTPException(status_code=403, detail="Only the assigned employee or an administrator can change status")

    comment = body.comment or f"Status updated to {body.status}"
    report = append_status_event(db, report, body.status, comment, actor)
    report = stamp_resolved(db, report)

    notify_parties(
        db, actor,
        [(report.get("submitted_by"), {})],
        notification_type="report_status",
        title="Report Status Updated",
        message=f'Your report "{report["title"]}" is now {report["status"].replace("_", " ")}',
        related_to=report_ref(report),
    )
    return serialize(report)


def assign_report(db, report_id: str, assignee_id: str, comment: Optional[str], user: dict) -> dict:
    report = load_report(db, report_id)
    assignee = db["user"].find_one({"_id": parse_object_id(assignee_id, "assignee ID")})
    if not assignee:
        raise HTTPException(status_code=404, detail="Assignee not found")
    if assignee.get("role") not in ASSIGNABLE_ROLES:
        raise HTTPException(status_code=400, detail="Reports can only be assigned to employees")

    actor = user_id(user)
    assignee_id = user_id(assignee)
    comment = comment or f"Assigned to {display_name(assignee)}"
    report = append_status_event(db, report, "assigned", comment, actor, extra_set={"assigned_to": assignee_id})

    notify_parties(
        db, actor,
        [
            (assignee_id, {"notification_type": "assignment", "title": "New Report Assigned",
                           "message": f'You have been assigned the report "{report["title"]}"',
                           "priority": "high" if report.get("priority") == "critical" else "normal"}),
            (report.get("submitted_by"), {"notification_type": "report_status", "title": "Report Assigned",
                                          "message": f'Your report "{report["title"]}" has been assigned to a field worker'}),
        ],
        related_to=report_ref(report),
    )
    return serialize(report)


def delete_report(db, report_id: str, reason: Optional[str], user: dict) -> str:
    """Soft delete: the report is closed, never removed."""
    report = load_report(db, report_id)
    actor = user_id(user)
    reason = reason or DEFAULT_DELETE_REASON
    report = append_status_event(db, report, "closed", reason, actor)

    notify_parties(
        db, actor,
        [(report.get("submitted_by"), {})],
        notification_type="report_status",
        title="Report Closed",
        message=f'Your report "{report["title"]}" has been closed. Reason: {reason}',
        related_to=report_ref(report),
    )
    return str(report["_id"])


def add_comment(db, report_id: str, text: Optional[str], user: dict) -> dict:
    if not text or not text.strip():
        raise HTTPException(status_code=400, detail="Comment text is required")
    actor = user_id(user)

    # Comments carry the current status and never move it. The write only lands
    # if the status is still the one copied into the entry.
    for _ in range(COMMENT_ATTEMPTS):
        report = load_report(db, report_id)
        entry = timeline_entry(report.get("status"), text, actor)
        updated = db[COLLECTION].find_one_and_update(
            {"_id": report["_id"], "status": report.get("status")},
            {"$push": {"timeline": entry}, "$set": {"updated_at": entry["timestamp"]}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            report = updated
            break
        logger.info("Report %s changed status while commenting, retrying", report["_id"])
    else:
        raise HTTPException(status_code=409, detail="Report status keeps changing, try again")

    snippet = text[:50] + ("..." if len(text) > 50 else "")
    name = display_name(user)
    notify_parties(
        db, actor,
        [
            (report.get("assigned_to"), {"title": "New Comment on Report",
                                         "message": f'{name} commented on a report: "{snippet}"'}),
            (report.get("submitted_by"), {"title": "New Comment on Your Report",
                                          "message": f'{name} commented on your report: "{snippet}"'}),
        ],
        notification_type="comment",
        related_to=report_ref(report),
        priority="high" if report.get("priority") == "critical" else "normal",
    )

    return {
        "id": entry["id"],
        "text": text,
        "created_at": entry["timestamp"],
        "user": _author(user),
    }


def _author(user: Optional[dict]) -> dict:
    if not user:
        return {"id": "system", "first_name": "System", "last_name": "", "role": "system"}
    return {
        "id": user_id(user),
        "first_name": user.get("first_name", ""),
        "last_name": user.get("last_name", ""),
        "role": user.get("role"),
    }


def get_comments(db, report_id: str) -> list:
    report = load_report(db, report_id)
    entries = [e for e in report.get("timeline", []) if (e.get("comment") or "").strip()]

    author_ids = {e["updated_by"] for e in entries if e.get("updated_by") and ObjectId.is_valid(e["updated_by"])}
    authors = {}
    if author_ids:
        for u in db["user"].find({"_id": {"$in": [ObjectId(a) for a in author_ids]}}):
            authors[str(u["_id"])] = u

    return [
        {
            "id": e.get("id"),
            "text": e["comment"],
            "status": e.get("status"),
            "created_at": e.get("timestamp"),
            "user": _author(authors.get(e.get("updated_by"))),
        }
        for e in entries
    ]


def bulk_apply(report_ids, operation) -> dict:
    """Run `operation(report_id)` for each id; one failure does not stop the rest."""
    processed, failed = [], []
    for report_id in report_ids:
        try:
            operation(report_id)
        except HTTPException as exc:
            failed.append({"id": report_id, "reason": exc.detail})
            continue
        processed.append(report_id)
    logger.info("Bulk operation: %d processed, %d failed", len(processed), len(failed))
    return {"processed": len(processed), "processed_ids": processed, "failed": failed}
