"""
Database Schemas for the FYP Portal

Each Pydantic model describes the documents of one MongoDB collection.
Relationships between collections are plain string ids copied between
documents (firebaseUid for people, the hex ObjectId for projects).
"""
from typing import Any, Dict, List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime

Role = Literal['student', 'supervisor']
ApplicationType = Literal['standard', 'proposal']
ApplicationStatus = Literal['pending', 'accepted', 'rejected']
SubmissionType = Literal['IP1', 'IP2']

# ------------------ Core Collections ------------------

class User(BaseModel):
    id: Optional[str] = Field(None, description="Document id as string")
    firebaseUid: str
    email: EmailStr
    name: Optional[str] = None
    userId: str = ""  # institutional student/staff number
    role: Role = 'student'
    department: Optional[str] = None
    phone: Optional[str] = None
    photoURL: Optional[str] = None
    expertise: List[str] = []
    bio: Optional[str] = None
    createdAt: Optional[datetime] = None

class Project(BaseModel):
    id: Optional[str] = None
    title: str
    description: str
    shortDescription: str = ""
    technologies: List[str] = []
    duration: str = ""
    supervisorUid: str
    supervisorName: str = ""
    supervisorEmail: str = ""
    status: Literal['open', 'archived'] = 'open'
    isBooked: bool = False
    bookedBy: Optional[str] = None  # student firebaseUid
    createdAt: Optional[datetime] = None

class Application(BaseModel):
    id: Optional[str] = None
    studentUid: str
    projectId: str = ""  # empty for proposals
    supervisorUid: str
    type: ApplicationType = 'standard'
    status: ApplicationStatus = 'pending'
    projectTitle: Optional[str] = None
    details: Optional[str] = None
    rejectionReason: Optional[str] = None
    createdAt: Optional[datetime] = None

class Submission(BaseModel):
    id: Optional[str] = None
    studentUid: str
    projectId: str
    type: SubmissionType
    fileUrl: str = ""
    note: str = ""
    feedback: str = ""
    createdAt: Optional[datetime] = None

class Logbook(BaseModel):
    id: Optional[str] = None
    studentUid: str
    projectId: str
    week: int
    date: str
    activities: str = ""
    hours: float = 0
    fileUrl: str = ""
    remarks: str = ""
    reviewed: bool = False
    supervisorFeedback: str = ""
    createdAt: Optional[datetime] = None

class Notification(BaseModel):
    id: Optional[str] = None
    userUid: str
    message: str
    read: bool = False
    createdAt: Optional[datetime] = None

class CompletedProject(BaseModel):
    id: Optional[str] = None
    title: str
    details: Dict[str, Any] = {}
    createdAt: Optional[datetime] = None

# ------------------ Read Models ------------------

class ApplicationView(BaseModel):
    """An application as a supervisor sees it: project title and student profile joined in."""
    id: str
    studentUid: str
    projectId: str = ""
    supervisorUid: str
    type: ApplicationType = 'standard'
    status: ApplicationStatus = 'pending'
    rejectionReason: Optional[str] = None
    details: Optional[str] = None
    createdAt: Optional[datetime] = None
    projectTitle: Optional[str] = None
    studentId: Optional[str] = None
    studentName: Optional[str] = None
    studentEmail: Optional[str] = None
