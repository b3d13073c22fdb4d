"""
E-Permitted Backend — Application Schemas
==========================================

What:  Intake payload, status change payload and the application views
       returned to applicants and staff.

Why `data` is an untyped object:
    Each permit type collects different information (building work, fences,
    resource consents...). The intake only requires that it is a JSON object;
    the permit type's `requirements` describe what reviewers expect in it.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from epermitted.models import ApplicationStatus


class ApplicationSubmit(BaseModel):
    """Body of POST /api/permits/submit."""
    user_id: uuid.UUID = Field(description="Applicant")
    council_id: uuid.UUID = Field(description="Council the application is lodged with")
    permit_type_id: uuid.UUID = Field(description="Permit type offered by that council")
    data: Dict[str, Any] = Field(description="Application document (JSON object)")


class SubmitResult(BaseModel):
    """What the applicant gets back immediately after submission."""
    id: uuid.UUID
    reference: str = Field(description="e.g. KCDC-2024-00001")
    status: ApplicationStatus
    submitted_at: datetime

    model_config = {"from_attributes": True}


class StatusUpdateRequest(BaseModel):
    status: ApplicationStatus


class ApplicationSummary(BaseModel):
    id: uuid.UUID
    reference: str
    status: ApplicationStatus
    council_id: uuid.UUID
    permit_type_id: uuid.UUID
    submitted_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CouncilRef(BaseModel):
    id: uuid.UUID
    name: str
    code: str

    model_config = {"from_attributes": True}


class PermitTypeRef(BaseModel):
    id: uuid.UUID
    name: str
    code: str

    model_config = {"from_attributes": True}


class ApplicantRef(BaseModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str

    model_config = {"from_attributes": True}


class ApplicationResponse(BaseModel):
    """
    Full application view.

    `ai_analysis` stays null until the background review has run; it then
    holds either {analysis, analyzedAt, model} or {error, analyzedAt}.
    """
    id: uuid.UUID
    reference: str
    status: ApplicationStatus
    data: Dict[str, Any]
    ai_analysis: Optional[Dict[str, Any]] = None
    submitted_at: datetime
    updated_at: datetime
    council: CouncilRef
    permit_type: PermitTypeRef
    user: ApplicantRef

    model_config = {"from_attributes": True}
