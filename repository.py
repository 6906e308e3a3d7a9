"""
Multi-step store operations for the FYP portal.

Everything here takes the ``Database`` explicitly so routes and tests share the
same code path. Only the project booking in ``submit_application`` is atomic;
the find-update-notify sequences are not.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

import pydantic
from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database

from database import create_document
from errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from schemas import Application, ApplicationView, Notification

logger = logging.getLogger("fyp_portal.repository")

M = TypeVar("M", bound=pydantic.BaseModel)


# --------- Utilities ---------

def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except Exception:
        raise ValidationError("Invalid id format")


def serialize(doc: dict) -> dict:
    if not doc:
        return doc
    doc["id"] = str(doc.get("_id"))
    doc.pop("_id", None)
    return doc


def build(model: Type[M], **fields: Any) -> Dict[str, Any]:
    """Validate ``fields`` against a document model and return the storable dict."""
    try:
        return model(**fields).model_dump(exclude={"id"}, exclude_none=False)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"Invalid {field}: {first.get('msg')}")


def iexact(value: str) -> Dict[str, str]:
    """Case-insensitive whole-string match."""
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


def search_pattern(search: str) -> Dict[str, str]:
    """Case-insensitive partial match; a pattern that does not compile is a bad request."""
    try:
        re.compile(search)
    except re.error:
        raise ValidationError("Invalid search pattern")
    return {"$regex": search, "$options": "i"}


def now() -> datetime:
    return datetime.now(timezone.utc)


# --------- Notifications ---------

def notify(db: Database, user_uid: str, message: str) -> str:
    doc = build(Notification, userUid=user_uid, message=message, read=False, createdAt=now())
    return create_document(db, "notifications", doc)


def list_notifications(db: Database, user_uid: str) -> List[dict]:
    items = db["notifications"].find({"userUid": user_uid}).sort("createdAt", DESCENDING)
    return [serialize(n) for n in items]


# --------- Applications ---------

def submit_application(db: Database, student_uid: str, project_id: str, supervisor_uid: str) -> dict:
    if not student_uid or not project_id or not supervisor_uid:
        raise ValidationError("Missing fields")

    pid = oid(project_id)
    booked = db["projects"].update_one(
        {"_id": pid, "isBooked": {"$ne": True}},
        {"$set": {"isBooked": True, "bookedBy": student_uid, "updatedAt": now()}},
    )
    if booked.matched_count == 0:
        if db["projects"].find_one({"_id": pid}, {"_id": 1}) is None:
            raise NotFoundError("Project not found")
        logger.info(f"Booking conflict on project {project_id} for student {student_uid}")
        raise ConflictError("This project has already been chosen by another student.")

    # Only reachable when an application survived a project release.
    existing = db["applications"].find_one({"studentUid": student_uid, "projectId": project_id})
    if existing:
        db["projects"].update_one(
            {"_id": pid, "bookedBy": student_uid},
            {"$set": {"isBooked": False, "bookedBy": None}},
        )
        raise ConflictError("You already applied for this project.")

    doc = build(
        Application,
        studentUid=student_uid,
        projectId=project_id,
        supervisorUid=supervisor_uid,
        type="standard",
        status="pending",
        createdAt=now(),
    )
    new_id = create_document(db, "applications", doc)
    logger.info(f"Project {project_id} booked by {student_uid}")
    return serialize(db["applications"].find_one({"_id": ObjectId(new_id)}))


def submit_proposal(
    db: Database,
    student_uid: str,
    supervisor_uid: str,
    project_title: Optional[str],
    details: Optional[str] = None,
) -> dict:
    title = (project_title or "").strip()
    if not student_uid or not supervisor_uid:
        raise ValidationError("studentUid and supervisorUid are required")
    if not title:
        raise ValidationError("projectTitle is required")

    duplicate = db["applications"].find_one(
        {"studentUid": student_uid, "type": "proposal", "projectTitle": iexact(title)}
    )
    if duplicate:
        raise ConflictError("You already proposed a project with this title.")

    doc = build(
        Application,
        studentUid=student_uid,
        projectId="",
        supervisorUid=supervisor_uid,
        type="proposal",
        status="pending",
        projectTitle=title,
        details=(details or "").strip(),
        createdAt=now(),
    )
    new_id = create_document(db, "applications", doc)
    return serialize(db["applications"].find_one({"_id": ObjectId(new_id)}))


def _project_title(db: Database, application: dict) -> Optional[str]:
    project_id = application.get("projectId") or ""
    if ObjectId.is_valid(project_id):
        project = db["projects"].find_one({"_id": ObjectId(project_id)}, {"title": 1})
        if project:
            return project.get("title")
    return application.get("projectTitle")


def decide_application(db: Database, application_id: str, status: Optional[str], reason: Optional[str] = None) -> dict:
    if status not in ("accepted", "rejected"):
        raise ValidationError("Valid status is required: accepted or rejected")
    reason = (reason or "").strip()
    if status == "rejected" and not reason:
        raise ValidationError("A reason is required when rejecting an application")

    app_id = oid(application_id)
    application = db["applications"].find_one({"_id": app_id})
    if not application:
        raise NotFoundError("Application not found")

    update: Dict[str, Any] = {"status": status, "updatedAt": now()}
    if status == "rejected":
        update["rejectionReason"] = reason
    db["applications"].update_one({"_id": app_id}, {"$set": update})

    project_id = application.get("projectId") or ""
    if status == "rejected" and ObjectId.is_valid(project_id):
        # only the booking this student holds is released
        db["projects"].update_one(
            {"_id": ObjectId(project_id), "bookedBy": application["studentUid"]},
            {"$set": {"isBooked": False, "bookedBy": None, "updatedAt": now()}},
        )
        logger.info(f"Project {project_id} released after rejecting application {application_id}")

    title = _project_title(db, application)
    subject = f'Your application for "{title}"' if title else "Your application"
    message = f"{subject} was {status}."
    if status == "rejected":
        message = f"{message} Reason: {reason}"
    notify(db, application["studentUid"], message)

    logger.info(f"Application {application_id} {status}")
    return serialize(db["applications"].find_one({"_id": app_id}))


def edit_proposal(
    db: Database,
    application_id: str,
    student_uid: Optional[str],
    project_title: Optional[str] = None,
    details: Optional[str] = None,
) -> dict:
    if not student_uid:
        raise ValidationError("studentUid is required")

    app_id = oid(application_id)
    application = db["applications"].find_one({"_id": app_id})
    if not application:
        raise NotFoundError("Application not found")
    if application.get("studentUid") != student_uid:
        raise AuthorizationError("You can only edit your own proposal")
    if application.get("type") != "proposal":
        raise ValidationError("Only proposals can be edited")

    update: Dict[str, Any] = {}
    if project_title is not None:
        title = project_title.strip()
        if not title:
            raise ValidationError("projectTitle cannot be empty")
        duplicate = db["applications"].find_one(
            {
                "_id": {"$ne": app_id},
                "studentUid": student_uid,
                "type": "proposal",
                "projectTitle": iexact(title),
            }
        )
        if duplicate:
            raise ConflictError("You already proposed a project with this title.")
        update["projectTitle"] = title
    if details is not None:
        update["details"] = details.strip()
    if not update:
        raise ValidationError("No valid fields to update")

    update["updatedAt"] = now()
    db["applications"].update_one({"_id": app_id}, {"$set": update})
    return serialize(db["applications"].find_one({"_id": app_id}))


def list_for_student(db: Database, student_uid: str) -> List[dict]:
    items = db["applications"].find({"studentUid": student_uid}).sort("createdAt", DESCENDING)
    return [serialize(a) for a in items]


def list_for_supervisor(db: Database, supervisor_uid: str) -> List[ApplicationView]:
    apps = list(db["applications"].find({"supervisorUid": supervisor_uid}).sort("createdAt", DESCENDING))

    project_ids = {a.get("projectId") for a in apps if ObjectId.is_valid(a.get("projectId") or "")}
    titles = {
        str(p["_id"]): p.get("title")
        for p in db["projects"].find({"_id": {"$in": [ObjectId(i) for i in project_ids]}}, {"title": 1})
    }

    student_uids = list({a["studentUid"] for a in apps})
    students = {
        u["firebaseUid"]: u
        for u in db["users"].find(
            {"firebaseUid": {"$in": student_uids}},
            {"firebaseUid": 1, "userId": 1, "name": 1, "email": 1},
        )
    }

    views = []
    for a in apps:
        student = students.get(a["studentUid"], {})
        views.append(
            ApplicationView(
                id=str(a["_id"]),
                studentUid=a["studentUid"],
                projectId=a.get("projectId") or "",
                supervisorUid=a["supervisorUid"],
                type=a.get("type", "standard"),
                status=a.get("status", "pending"),
                rejectionReason=a.get("rejectionReason"),
                details=a.get("details"),
                createdAt=a.get("createdAt"),
                projectTitle=titles.get(a.get("projectId")) or a.get("projectTitle"),
                studentId=student.get("userId"),
                studentName=student.get("name"),
                studentEmail=student.get("email"),
            )
        )
    return views


# --------- Submissions ---------

def attach_feedback(db: Database, submission_id: str, feedback: Optional[str]) -> dict:
    if not feedback:
        raise ValidationError("feedback is required")

    sid = oid(submission_id)
    submission = db["submissions"].find_one({"_id": sid})
    if not submission:
        raise NotFoundError("Submission not found")

    db["submissions"].update_one({"_id": sid}, {"$set": {"feedback": feedback, "updatedAt": now()}})
    notify(db, submission["studentUid"], f"You received feedback for {submission['type']}.")
    return serialize(db["submissions"].find_one({"_id": sid}))


# --------- Logbooks ---------

def _draft_logbook(db: Database, logbook_id: str) -> dict:
    logbook = db["logbooks"].find_one({"_id": oid(logbook_id)})
    if not logbook:
        raise NotFoundError("Logbook not found")
    if logbook.get("reviewed"):
        raise ConflictError("Cannot modify logbook after review")
    return logbook


def update_logbook(db: Database, logbook_id: str, changes: Dict[str, Any]) -> dict:
    logbook = _draft_logbook(db, logbook_id)
    if not changes:
        raise ValidationError("No valid fields to update")
    # reviewed is re-checked in the filter
    res = db["logbooks"].update_one(
        {"_id": logbook["_id"], "reviewed": False},
        {"$set": {**changes, "updatedAt": now()}},
    )
    if res.matched_count == 0:
        raise ConflictError("Cannot modify logbook after review")
    return serialize(db["logbooks"].find_one({"_id": logbook["_id"]}))


def delete_logbook(db: Database, logbook_id: str) -> None:
    logbook = _draft_logbook(db, logbook_id)
    res = db["logbooks"].delete_one({"_id": logbook["_id"], "reviewed": False})
    if res.deleted_count == 0:
        raise ConflictError("Cannot modify logbook after review")


def review_logbook(db: Database, logbook_id: str, feedback: Optional[str]) -> dict:
    if feedback is None:
        raise ValidationError("feedback is required")

    lid = oid(logbook_id)
    logbook = db["logbooks"].find_one({"_id": lid})
    if not logbook:
        raise NotFoundError("Logbook not found")

    res = db["logbooks"].update_one(
        {"_id": lid, "reviewed": False},
        {"$set": {"reviewed": True, "supervisorFeedback": feedback, "updatedAt": now()}},
    )
    if res.matched_count == 0:
        raise ConflictError("Logbook already reviewed")
    notify(db, logbook["studentUid"], f"Your logbook for week {logbook['week']} has been reviewed.")
    return serialize(db["logbooks"].find_one({"_id": lid}))
