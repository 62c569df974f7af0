"""
subspace/services/email_service.py - Inspection report and invitation emails
Bodies are rendered with Jinja2 (autoescaped), so submitted text never reaches
a recipient's mail client as markup.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape
from loguru import logger

from subspace.clients.resend_client import Mailer
from subspace.models import EmailOptions, InvitationRequest, StoredSubmission

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

FORM_PATH = "/forms/impalement-protection"


def _get_jinja_env() -> Environment:
    """Build Jinja2 environment for email templates."""
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html"]),
    )


def _render(template_name: str, context: dict) -> str:
    return _get_jinja_env().get_template(template_name).render(**context)


# ──────────────────────────────────────────────────────────────────────────────
# Inspection report
# ──────────────────────────────────────────────────────────────────────────────

def build_report_subject(job_number: str, requested: Optional[str] = None) -> str:
    return requested or f"Impalement Protection Inspection Form - Job #{job_number}"


def _build_report_context(submission: StoredSubmission) -> dict:
    data = submission.data
    inspections = data.get("inspections") or []
    return {
        "job_number": submission.job_number,
        "submitted_by": submission.submitted_by,
        "submitted_by_company": submission.submitted_by_company,
        "submitted_by_email": submission.submitted_by_email,
        "date": data.get("date", ""),
        "inspections": [
            {
                "start_time": i.get("startTime", ""),
                "end_time": i.get("endTime", ""),
                "location": i.get("location", ""),
                "hazard_description": i.get("hazardDescription", ""),
                "corrective_measures": i.get("correctiveMeasures", ""),
                "creating_employer": i.get("creatingEmployer", ""),
                "supervisor": i.get("supervisor", ""),
            }
            for i in inspections
        ],
        "inspection_count": len(inspections),
        "has_signature": bool(data.get("signature")),
        "submission_time": submission.submitted_at.astimezone(timezone.utc).strftime(
            "%B %d, %Y %H:%M UTC"
        ),
    }


def send_form_report(
    mailer: Optional[Mailer],
    submission: StoredSubmission,
    options: EmailOptions,
) -> bool:
    """Email the inspection report. False when no mailer is configured or sending fails."""
    if mailer is None:
        logger.error("Email requested but RESEND_API_KEY is not configured.")
        return False

    context = _build_report_context(submission)
    return mailer.send(
        to=str(options.recipient_email),
        subject=build_report_subject(submission.job_number, options.email_subject),
        html_body=_render("form_report.html", context),
        plain_body=_render("form_report.txt", context),
    )


# ──────────────────────────────────────────────────────────────────────────────
# Subcontractor invitation
# ──────────────────────────────────────────────────────────────────────────────

INVITATION_SUBJECT = "Invitation: Join Our Impalement Protection Safety Program"


def build_invitation_url(base_url: str, invite: InvitationRequest) -> str:
    """Form link with the subcontractor's details pre-filled."""
    params = {
        "name": invite.subcontractor_name,
        "email": str(invite.subcontractor_email),
        "company": invite.subcontractor_company,
        "jobNumber": invite.job_number,
        "superintendentEmail": str(invite.superintendent_email),
    }
    if invite.project_email:
        params["projectEmail"] = str(invite.project_email)
    return f"{base_url.rstrip('/')}{FORM_PATH}?{urlencode(params)}"


def send_invitation(
    mailer: Optional[Mailer],
    invite: InvitationRequest,
    form_url: str,
    superintendent_name: str = "Your Superintendent",
) -> bool:
    if mailer is None:
        logger.error("Invitation requested but RESEND_API_KEY is not configured.")
        return False

    context = {
        "subcontractor_name": invite.subcontractor_name,
        "subcontractor_company": invite.subcontractor_company,
        "job_number": invite.job_number,
        "personal_note": invite.personal_note,
        "superintendent_name": superintendent_name,
        "form_url": form_url,
        "year": datetime.now(timezone.utc).year,
    }
    return mailer.send(
        to=str(invite.subcontractor_email),
        subject=INVITATION_SUBJECT,
        html_body=_render("invitation.html", context),
        plain_body=_render("invitation.txt", context),
        bcc=[str(invite.project_email)] if invite.project_email else None,
    )
