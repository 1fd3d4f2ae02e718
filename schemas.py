"""
Database Schemas

Each Pydantic model represents a collection in the entity store.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- MentorshipRequest -> "mentorshiprequest" collection
- ReferralApplication -> "referralapplication" collection

The store adds ``id``, ``created_date`` and ``updated_date`` to every record.
Request bodies that differ from the stored shape are defined at the bottom.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import date

MentorshipStatus = Literal["pending", "accepted", "rejected"]
ApplicationStatus = Literal["pending", "approved", "rejected"]
JobType = Literal["Full-time", "Internship", "Part-time", "Contract"]
PostType = Literal[
    "General",
    "Opportunity",
    "Career Journey",
    "Success Story",
    "Tips & Advice",
    "Industry Update",
]
ResourceCategory = Literal[
    "Resume Templates",
    "Interview Prep",
    "DSA Practice",
    "System Design",
    "HR Tips",
    "Coding Practice",
    "Career Guidance",
    "Other",
]
ResourceType = Literal["Document", "Link", "Video", "Guide"]


# Users: students, alumni mentors and administrators share one collection
class User(BaseModel):
    """
    Users collection schema
    Collection name: "user" (lowercase of class name)
    """
    email: str = Field(..., description="Email address, used to log in")
    full_name: str = Field(..., description="Full name")
    role: Literal["user", "admin"] = Field("user", description="Explicit role override")
    branch: Optional[str] = Field(None, description="Branch, e.g. CSE, IT, ECE")
    batch: Optional[str] = Field(None, description="Graduation batch")
    year: Optional[str] = Field(None, description="Current year or 'Alumni'")
    expertise_domains: List[str] = Field(default_factory=list, description="Domains a mentor can help with")
    current_company: Optional[str] = Field(None)
    position: Optional[str] = Field(None)
    bio: Optional[str] = Field(None)
    skills: List[str] = Field(default_factory=list)
    linkedin_url: Optional[str] = Field(None)


class MentorshipRequest(BaseModel):
    student_id: str = Field(..., description="Requesting student user id")
    mentor_id: str = Field(..., description="Requested mentor user id")
    domain: str = Field(..., description="Mentorship domain, e.g. Career Guidance")
    message: str = Field(..., description="Introductory message to the mentor")
    goals: Optional[str] = Field(None)
    status: MentorshipStatus = Field("pending")


# Job/internship postings routed through an alumni poster
class ReferralOpportunity(BaseModel):
    posted_by: str = Field(..., description="User id of the alumni or admin reviewing applications")
    company_name: str = Field(...)
    position: str = Field(...)
    job_type: JobType = Field("Full-time")
    location: Optional[str] = Field(None)
    required_skills: List[str] = Field(default_factory=list)
    description: str = Field(...)
    salary_range: Optional[str] = Field(None)
    application_deadline: Optional[date] = Field(None)
    is_active: bool = Field(True)


class ReferralApplication(BaseModel):
    opportunity_id: str = Field(...)
    applicant_id: str = Field(...)
    resume_url: str = Field(..., description="URL returned by the upload service")
    cover_note: str = Field(...)
    status: ApplicationStatus = Field("pending")
    reviewer_notes: Optional[str] = Field(None)


class Community(BaseModel):
    name: str = Field(...)
    description: str = Field(...)
    cover_image_url: Optional[str] = Field(None)


class CommunityMember(BaseModel):
    community_id: str
    user_id: str


class CommunityPost(BaseModel):
    community_id: str
    author_id: str
    title: str
    content: str
    post_type: PostType = Field("General")
    opportunity_id: Optional[str] = Field(None, description="Linked opportunity for Opportunity posts")
    tags: List[str] = Field(default_factory=list)
    likes_count: int = Field(0, ge=0)
    comments_count: int = Field(0, ge=0)


class ChatMessage(BaseModel):
    mentorship_request_id: str
    sender_id: str
    receiver_id: str
    content: str = Field("", description="Text body, may be empty for file messages")
    file_url: Optional[str] = Field(None)
    file_name: Optional[str] = Field(None)


class CareerResource(BaseModel):
    title: str
    description: Optional[str] = Field(None)
    category: ResourceCategory = Field("Resume Templates")
    type: ResourceType = Field("Document")
    content_url: str
    uploaded_by: str
    is_approved: bool = Field(True)
    likes_count: int = Field(0, ge=0)


# ---------- Request bodies (not collections) ----------

class LoginRequest(BaseModel):
    email: str


class MentorshipRequestCreate(BaseModel):
    mentor_id: str
    domain: str = ""
    message: str = ""
    goals: Optional[str] = None


class RespondAction(BaseModel):
    status: str = Field(..., description="accepted | rejected")


class OpportunityCreate(BaseModel):
    posted_by: Optional[str] = Field(None, description="Defaults to the acting admin")
    company_name: str = ""
    position: str = ""
    job_type: JobType = "Full-time"
    location: Optional[str] = None
    required_skills: List[str] = Field(default_factory=list)
    description: str = ""
    salary_range: Optional[str] = None
    application_deadline: Optional[date] = None
    is_active: bool = True


class OpportunityUpdate(BaseModel):
    posted_by: Optional[str] = None
    company_name: Optional[str] = None
    position: Optional[str] = None
    job_type: Optional[JobType] = None
    location: Optional[str] = None
    required_skills: Optional[List[str]] = None
    description: Optional[str] = None
    salary_range: Optional[str] = None
    application_deadline: Optional[date] = None
    is_active: Optional[bool] = None


class ApplicationCreate(BaseModel):
    resume_url: str = ""
    cover_note: str = ""


class ReviewAction(BaseModel):
    status: str = Field(..., description="approved | rejected")
    reviewer_notes: Optional[str] = None


class MessageCreate(BaseModel):
    content: str = ""
    file_url: Optional[str] = None
    file_name: Optional[str] = None


class CommunityCreate(BaseModel):
    name: str = ""
    description: str = ""
    cover_image_url: Optional[str] = None


class PostCreate(BaseModel):
    title: str = ""
    content: str = ""
    post_type: PostType = "General"
    opportunity_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ResourceCreate(BaseModel):
    title: str = ""
    description: Optional[str] = None
    category: ResourceCategory = "Resume Templates"
    type: ResourceType = "Document"
    content_url: str = ""


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    role: Optional[Literal["user", "admin"]] = None
    branch: Optional[str] = None
    batch: Optional[str] = None
    year: Optional[str] = None
    expertise_domains: Optional[List[str]] = None
    current_company: Optional[str] = None
    position: Optional[str] = None
    bio: Optional[str] = None
    skills: Optional[List[str]] = None
    linkedin_url: Optional[str] = None


class PromoteMentor(BaseModel):
    expertise_domains: List[str] = Field(default_factory=list)
    current_company: Optional[str] = None
    position: Optional[str] = None
    bio: Optional[str] = None
    year: Optional[str] = None
    batch: Optional[str] = None


class AssistantQuestion(BaseModel):
    message: str = ""
