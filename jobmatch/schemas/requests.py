# jobmatch/schemas/requests.py
from typing import Literal, Optional

from pydantic import BaseModel, Field

FeedbackAction = Literal["viewed", "applied", "saved", "dismissed", "not_interested"]
AdminAction = Literal["process_resume", "match_job", "send_emails", "full_test"]


class FeedbackIn(BaseModel):
    jobId: str
    action: FeedbackAction
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = Field(default=None, max_length=2000)


class AdminTestIn(BaseModel):
    action: AdminAction
    userId: Optional[str] = None
    jobId: Optional[str] = None
    resumeText: Optional[str] = None


class QueueProcessIn(BaseModel):
    batchSize: int = Field(default=100, ge=1, le=1000)


class EnqueueIn(BaseModel):
    type: Literal["resume_embedding", "featured_match", "notify", "cleanup_matches"]
    payload: dict = Field(default_factory=dict)
    delaySeconds: int = Field(default=0, ge=0)
