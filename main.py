import logging
import os
import random
import shutil
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import database
import repository
from config import settings
from database import COLLECTIONS, create_document, ensure_indexes, get_db, get_documents
from errors import AuthorizationError, ConflictError, NotFoundError, PortalError, ValidationError
from logging_config import setup_logging
from repository import build, iexact, now, oid, search_pattern, serialize
from schemas import CompletedProject, Logbook, Project, Submission, User

logger = logging.getLogger("fyp_portal.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Starting FYP Portal API...")
    db = database.connect()
    try:
        ensure_indexes(db)
    except PyMongoError as e:
        # Do not crash on startup if indexes fail
        logger.warning(f"Could not ensure indexes: {e}")
    yield
    logger.info("Shutting down FYP Portal API...")
    database.close()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------- Error handlers ---------

@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    return JSONResponse(status_code=400, content={"message": f"Invalid {field}: {first.get('msg', 'bad request')}"})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"message": "Duplicate record"})


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": str(exc)})


# --------- Schemas (light, for request bodies) ---------
class UserIn(BaseModel):
    firebaseUid: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    userId: Optional[str] = ""
    role: Optional[str] = None  # student/supervisor
    department: Optional[str] = None
    phone: Optional[str] = None
    photoURL: Optional[str] = None
    expertise: List[str] = []
    bio: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    userId: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    photoURL: Optional[str] = None
    expertise: Optional[List[str]] = None
    bio: Optional[str] = None


class ProjectIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    shortDescription: Optional[str] = ""
    technologies: List[str] = []
    duration: Optional[str] = ""
    supervisorUid: Optional[str] = None
    supervisorName: Optional[str] = ""
    supervisorEmail: Optional[str] = ""
    status: Optional[str] = "open"


class ProjectUpdate(BaseModel):
    supervisorUid: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    shortDescription: Optional[str] = None
    technologies: Optional[List[str]] = None
    duration: Optional[str] = None


class OwnerIn(BaseModel):
    supervisorUid: Optional[str] = None


class ApplicationIn(BaseModel):
    studentUid: Optional[str] = None
    projectId: Optional[str] = None
    supervisorUid: Optional[str] = None


class ProposalIn(BaseModel):
    studentUid: Optional[str] = None
    supervisorUid: Optional[str] = None
    projectTitle: Optional[str] = None
    details: Optional[str] = None


class DecisionIn(BaseModel):
    status: Optional[str] = None  # accepted/rejected
    reason: Optional[str] = None


class ProposalEditIn(BaseModel):
    studentUid: Optional[str] = None
    projectTitle: Optional[str] = None
    details: Optional[str] = None


class SubmissionIn(BaseModel):
    studentUid: Optional[str] = None
    projectId: Optional[str] = None
    type: Optional[str] = None  # IP1/IP2
    fileUrl: Optional[str] = ""
    note: Optional[str] = ""


class FeedbackIn(BaseModel):
    feedback: Optional[str] = None


class LogbookIn(BaseModel):
    studentUid: Optional[str] = None
    projectId: Optional[str] = None
    week: Optional[int] = None
    date: Optional[str] = None
    activities: Optional[str] = ""
    hours: Optional[float] = 0
    fileUrl: Optional[str] = ""
    remarks: Optional[str] = ""


class LogbookUpdate(BaseModel):
    activities: Optional[str] = None
    hours: Optional[float] = None
    fileUrl: Optional[str] = None
    remarks: Optional[str] = None
    date: Optional[str] = None


class CompletedProjectIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    details: Dict[str, Any] = {}


# --------- Root & Health ---------
@app.get("/")
def read_root():
    return {"message": "FYP Portal Server is Running"}


@app.get("/health")
def health():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
    }
    if database.db is not None:
        response["database_name"] = database.db.name
        if database.ping():
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
        else:
            response["database"] = "⚠️ Configured but not reachable"
    return response


@app.get("/schema")
def get_schema_overview():
    return {"collections": COLLECTIONS}


# --------- Users ---------
@app.post("/users")
def register_user(user: UserIn, db: Database = Depends(get_db)):
    if not user.firebaseUid or not user.email:
        raise ValidationError("firebaseUid and email are required")
    if db["users"].find_one({"firebaseUid": user.firebaseUid}):
        return {"message": "User already exists"}

    data = build(
        User,
        firebaseUid=user.firebaseUid,
        email=user.email,
        name=user.name,
        userId=user.userId or "",
        role=user.role or "student",
        department=user.department,
        phone=user.phone,
        photoURL=user.photoURL,
        expertise=user.expertise,
        bio=user.bio,
        createdAt=now(),
    )
    new_id = create_document(db, "users", data)
    logger.info(f"Registered {data['role']} {user.firebaseUid}")
    return serialize(db["users"].find_one({"_id": oid(new_id)}))


@app.get("/users/{uid}")
def get_user(uid: str, db: Database = Depends(get_db)):
    u = db["users"].find_one({"firebaseUid": uid})
    if not u:
        raise NotFoundError("User not found")
    return serialize(u)


@app.patch("/users/{uid}")
def update_user(uid: str, changes: UserUpdate, db: Database = Depends(get_db)):
    update = changes.model_dump(exclude_unset=True)
    if not update:
        raise ValidationError("No valid fields to update")
    res = db["users"].update_one({"firebaseUid": uid}, {"$set": {**update, "updatedAt": now()}})
    if res.matched_count == 0:
        raise NotFoundError("User not found")
    return serialize(db["users"].find_one({"firebaseUid": uid}))


@app.get("/supervisors")
def list_supervisors(db: Database = Depends(get_db)):
    items = db["users"].find(
        {"role": "supervisor"},
        {"firebaseUid": 1, "name": 1, "email": 1, "department": 1, "expertise": 1, "photoURL": 1, "bio": 1},
    ).sort("name", ASCENDING)
    return [serialize(u) for u in items]


# --------- Projects ---------
def _owned_project(db: Database, project_id: str, supervisor_uid: Optional[str]) -> dict:
    pr = db["projects"].find_one({"_id": oid(project_id)})
    if not pr:
        raise NotFoundError("Project not found")
    if supervisor_uid and pr.get("supervisorUid") != supervisor_uid:
        raise AuthorizationError("Only the owning supervisor can change this project")
    return pr


@app.post("/projects")
def create_project(p: ProjectIn, db: Database = Depends(get_db)):
    title = (p.title or "").strip()
    if not title or not p.description or not p.supervisorUid:
        raise ValidationError("title, description and supervisorUid are required")
    if db["projects"].find_one({"title": iexact(title)}):
        raise ConflictError("Project title already exists")

    data = build(
        Project,
        title=title,
        description=p.description.strip(),
        shortDescription=(p.shortDescription or "").strip(),
        technologies=p.technologies,
        duration=p.duration or "",
        supervisorUid=p.supervisorUid,
        supervisorName=p.supervisorName or "",
        supervisorEmail=p.supervisorEmail or "",
        status=p.status or "open",
        isBooked=False,
        bookedBy=None,
        createdAt=now(),
    )
    new_id = create_document(db, "projects", data)
    return serialize(db["projects"].find_one({"_id": oid(new_id)}))


@app.get("/projects")
def list_projects(search: Optional[str] = None, db: Database = Depends(get_db)):
    query: Dict[str, Any] = {"status": "open"}
    if search:
        query["title"] = search_pattern(search)
    items = get_documents(db, "projects", query, sort=[("createdAt", DESCENDING)])
    return [serialize(i) for i in items]


@app.get("/projects/mine")
def my_projects(supervisorUid: Optional[str] = None, db: Database = Depends(get_db)):
    if not supervisorUid:
        raise ValidationError("supervisorUid is required")
    items = get_documents(db, "projects", {"supervisorUid": supervisorUid}, sort=[("createdAt", DESCENDING)])
    return [serialize(i) for i in items]


@app.get("/projects/{project_id}")
def get_project(project_id: str, db: Database = Depends(get_db)):
    pr = db["projects"].find_one({"_id": oid(project_id)})
    if not pr:
        raise NotFoundError("Project not found")
    return serialize(pr)


@app.patch("/projects/{project_id}")
def update_project(project_id: str, p: ProjectUpdate, db: Database = Depends(get_db)):
    if not p.supervisorUid:
        raise ValidationError("supervisorUid is required")
    pr = _owned_project(db, project_id, p.supervisorUid)

    update = p.model_dump(exclude_unset=True, exclude={"supervisorUid"})
    if "title" in update:
        title = (update["title"] or "").strip()
        if not title:
            raise ValidationError("title cannot be empty")
        if db["projects"].find_one({"_id": {"$ne": pr["_id"]}, "title": iexact(title)}):
            raise ConflictError("Project title already exists")
        update["title"] = title
    if not update:
        raise ValidationError("No valid fields to update")

    db["projects"].update_one({"_id": pr["_id"]}, {"$set": {**update, "updatedAt": now()}})
    return serialize(db["projects"].find_one({"_id": pr["_id"]}))


@app.patch("/projects/{project_id}/archive")
def archive_project(project_id: str, body: Optional[OwnerIn] = None, db: Database = Depends(get_db)):
    pr = _owned_project(db, project_id, body.supervisorUid if body else None)
    db["projects"].update_one({"_id": pr["_id"]}, {"$set": {"status": "archived", "updatedAt": now()}})
    return serialize(db["projects"].find_one({"_id": pr["_id"]}))


@app.delete("/projects/{project_id}")
def delete_project(project_id: str, supervisorUid: Optional[str] = None, db: Database = Depends(get_db)):
    pr = _owned_project(db, project_id, supervisorUid)
    res = db["projects"].delete_one({"_id": pr["_id"], "isBooked": {"$ne": True}})
    if res.deleted_count == 0:
        raise ConflictError("Cannot delete a project that a student has chosen")
    return {"deleted": True}


# --------- Applications ---------
@app.post("/applications")
def apply_to_project(a: ApplicationIn, db: Database = Depends(get_db)):
    return repository.submit_application(db, a.studentUid, a.projectId, a.supervisorUid)


@app.post("/applications/proposal")
def propose_project(p: ProposalIn, db: Database = Depends(get_db)):
    return repository.submit_proposal(db, p.studentUid, p.supervisorUid, p.projectTitle, p.details)


@app.get("/applications")
def list_applications(
    studentUid: Optional[str] = None,
    supervisorUid: Optional[str] = None,
    db: Database = Depends(get_db),
):
    if not studentUid and not supervisorUid:
        raise ValidationError("studentUid or supervisorUid is required")
    if supervisorUid:
        return [v.model_dump() for v in repository.list_for_supervisor(db, supervisorUid)]
    return repository.list_for_student(db, studentUid)


@app.patch("/applications/{application_id}")
def decide_application(application_id: str, body: DecisionIn, db: Database = Depends(get_db)):
    return repository.decide_application(db, application_id, body.status, body.reason)


@app.patch("/applications/{application_id}/proposal")
def edit_proposal(application_id: str, body: ProposalEditIn, db: Database = Depends(get_db)):
    return repository.edit_proposal(db, application_id, body.studentUid, body.projectTitle, body.details)


# --------- Submissions ---------
@app.post("/submissions")
def create_submission(s: SubmissionIn, db: Database = Depends(get_db)):
    if not s.studentUid or not s.projectId or not s.type:
        raise ValidationError("studentUid, projectId, and type are required")
    if s.type not in ("IP1", "IP2"):
        raise ValidationError("type must be IP1 or IP2")
    if db["submissions"].find_one({"studentUid": s.studentUid, "projectId": s.projectId, "type": s.type}):
        raise ConflictError(f"{s.type} already submitted")

    data = build(
        Submission,
        studentUid=s.studentUid,
        projectId=s.projectId,
        type=s.type,
        fileUrl=s.fileUrl or "",
        note=s.note or "",
        feedback="",
        createdAt=now(),
    )
    new_id = create_document(db, "submissions", data)
    return serialize(db["submissions"].find_one({"_id": oid(new_id)}))


@app.get("/submissions")
def list_submissions(
    projectId: Optional[str] = None,
    studentUid: Optional[str] = None,
    db: Database = Depends(get_db),
):
    query = {}
    if projectId:
        query["projectId"] = projectId
    if studentUid:
        query["studentUid"] = studentUid
    items = get_documents(db, "submissions", query, sort=[("createdAt", DESCENDING)])
    return [serialize(i) for i in items]


@app.patch("/submissions/{submission_id}")
def add_submission_feedback(submission_id: str, body: FeedbackIn, db: Database = Depends(get_db)):
    return repository.attach_feedback(db, submission_id, body.feedback)


# --------- Logbooks ---------
@app.post("/logbooks")
def create_logbook(lb: LogbookIn, db: Database = Depends(get_db)):
    if not lb.studentUid or not lb.projectId or lb.week is None or not lb.date:
        raise ValidationError("studentUid, projectId, week (number) and date are required")
    if db["logbooks"].find_one({"studentUid": lb.studentUid, "projectId": lb.projectId, "week": lb.week}):
        raise ConflictError(f"Logbook for week {lb.week} already submitted")

    data = build(
        Logbook,
        studentUid=lb.studentUid,
        projectId=lb.projectId,
        week=lb.week,
        date=lb.date,
        activities=lb.activities or "",
        hours=lb.hours or 0,
        fileUrl=lb.fileUrl or "",
        remarks=lb.remarks or "",
        reviewed=False,
        supervisorFeedback="",
        createdAt=now(),
    )
    new_id = create_document(db, "logbooks", data)
    return serialize(db["logbooks"].find_one({"_id": oid(new_id)}))


@app.get("/logbooks")
def list_logbooks(
    studentUid: Optional[str] = None,
    projectId: Optional[str] = None,
    week: Optional[int] = None,
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if studentUid:
        query["studentUid"] = studentUid
    if projectId:
        query["projectId"] = projectId
    if week is not None:
        query["week"] = week
    items = get_documents(db, "logbooks", query, sort=[("week", ASCENDING), ("createdAt", DESCENDING)])
    return [serialize(i) for i in items]


@app.get("/logbooks/{logbook_id}")
def get_logbook(logbook_id: str, db: Database = Depends(get_db)):
    lb = db["logbooks"].find_one({"_id": oid(logbook_id)})
    if not lb:
        raise NotFoundError("Logbook not found")
    return serialize(lb)


@app.patch("/logbooks/{logbook_id}")
def update_logbook(logbook_id: str, changes: LogbookUpdate, db: Database = Depends(get_db)):
    return repository.update_logbook(db, logbook_id, changes.model_dump(exclude_unset=True))


@app.patch("/logbooks/{logbook_id}/review")
def review_logbook(logbook_id: str, body: FeedbackIn, db: Database = Depends(get_db)):
    return repository.review_logbook(db, logbook_id, body.feedback)


@app.delete("/logbooks/{logbook_id}")
def delete_logbook(logbook_id: str, db: Database = Depends(get_db)):
    repository.delete_logbook(db, logbook_id)
    return {"deleted": True}


# --------- Notifications ---------
@app.get("/notifications")
def list_notifications(userUid: Optional[str] = None, db: Database = Depends(get_db)):
    if not userUid:
        raise ValidationError("userUid is required")
    return repository.list_notifications(db, userUid)


# --------- Completed projects ---------
@app.post("/completed-projects")
def add_completed_project(body: CompletedProjectIn, db: Database = Depends(get_db)):
    title = (body.title or "").strip()
    if not title:
        raise ValidationError("title is required")
    data = build(
        CompletedProject,
        title=title,
        details={**body.details, **(body.model_extra or {})},
        createdAt=now(),
    )
    new_id = create_document(db, "completed_projects", data)
    return serialize(db["completed_projects"].find_one({"_id": oid(new_id)}))


@app.get("/completed-projects")
def list_completed_projects(search: Optional[str] = None, db: Database = Depends(get_db)):
    query = {}
    if search:
        query["title"] = search_pattern(search)
    items = get_documents(db, "completed_projects", query, sort=[("createdAt", DESCENDING)], limit=50)
    return [serialize(i) for i in items]


# --------- Uploads ---------
@app.post("/upload")
def upload_file(file: Optional[UploadFile] = File(None)):
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")
    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    name = f"{int(time.time() * 1000)}-{random.randint(0, 999_999_999)}{Path(file.filename).suffix}"
    with open(upload_dir / name, "wb") as out:
        shutil.copyfileobj(file.file, out)
    logger.info(f"Stored upload {name}")
    return {"fileUrl": f"/uploads/{name}"}


@app.get("/uploads/{name}")
def get_upload(name: str):
    # UPLOAD_DIR is read per request; Path(name).name keeps lookups inside it
    path = Path(settings.UPLOAD_DIR) / Path(name).name
    if not path.is_file():
        raise NotFoundError("File not found")
    return FileResponse(path)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.PORT))
    uvicorn.run(app, host="0.0.0.0", port=port)
