"""
tests/test_email_service.py - Report/invitation rendering and the Resend client
"""
from __future__ import annotations

import json

import httpx

from subspace.clients.resend_client import ResendMailer
from subspace.config import Settings
from subspace.models import EmailOptions, InvitationRequest, StoredSubmission
from subspace.services import email_service


def _submission(**data) -> StoredSubmission:
    return StoredSubmission(
        id=7,
        form_type="impalement-protection",
        job_number="J-77",
        submitted_by="Dana Cruz",
        submitted_by_email="dana@rebarco.example.com",
        submitted_by_company="Rebar & Sons",
        data={
            "date": "2026-10-18",
            "inspections": [
                {
                    "startTime": "07:00",
                    "endTime": "07:45",
                    "location": "Stair core B",
                    "hazardDescription": "Dowels left uncapped",
                    "correctiveMeasures": "Capped",
                    "creatingEmployer": "Rebar & Sons",
                    "supervisor": "Lee",
                },
            ],
            **data,
        },
    )


class Recorder:
    def __init__(self) -> None:
        self.calls = []

    def send(self, **kwargs) -> bool:
        self.calls.append(kwargs)
        return True


def test_report_subject_defaults_to_job_number():
    assert email_service.build_report_subject("J-77") == "Impalement Protection Inspection Form - Job #J-77"
    assert email_service.build_report_subject("J-77", "Custom") == "Custom"


def test_report_renders_both_bodies():
    mailer = Recorder()
    options = EmailOptions(recipient_email="gc@buildco.example.com")

    assert email_service.send_form_report(mailer, _submission(signature="data:image/png;base64,AA"), options)

    call = mailer.calls[0]
    assert call["to"] == "gc@buildco.example.com"
    assert "Rebar &amp; Sons" in call["html_body"]
    assert "Rebar & Sons" in call["plain_body"]
    assert "Stair core B" in call["plain_body"]
    assert "Number of Inspections: 1" in call["plain_body"]


def test_report_without_mailer_fails():
    options = EmailOptions(recipient_email="gc@buildco.example.com")
    assert email_service.send_form_report(None, _submission(), options) is False


def test_invitation_url_omits_absent_project_email():
    invite = InvitationRequest(
        subcontractor_name="Riley Ortiz",
        subcontractor_email="riley@formworks.example.com",
        subcontractor_company="Formworks LLC",
        job_number="J-1",
        superintendent_email="super@subspace.example.com",
    )
    url = email_service.build_invitation_url("https://forms.example.com/", invite)
    assert url.startswith("https://forms.example.com/forms/impalement-protection?")
    assert "name=Riley+Ortiz" in url
    assert "projectEmail" not in url


# ──────────────────────────────────────────────────────────────────────────────
# Resend client
# ──────────────────────────────────────────────────────────────────────────────

def test_resend_mailer_posts_message():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "email_123"})

    mailer = ResendMailer(
        api_key="re_test",
        from_address="forms@subspace.example.com",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    assert mailer.send("gc@buildco.example.com", "Subject", "<p>hi</p>", "hi", bcc=["pm@buildco.example.com"])

    request = seen[0]
    assert request.headers["Authorization"] == "Bearer re_test"
    body = json.loads(request.content)
    assert body == {
        "from": "forms@subspace.example.com",
        "to": ["gc@buildco.example.com"],
        "subject": "Subject",
        "html": "<p>hi</p>",
        "text": "hi",
        "bcc": ["pm@buildco.example.com"],
    }


def test_resend_mailer_reports_failure():
    mailer = ResendMailer(
        api_key="re_test",
        from_address="forms@subspace.example.com",
        attempts=1,
        client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(422, json={}))),
    )
    assert mailer.send("gc@buildco.example.com", "Subject", "<p>hi</p>", "hi") is False


def test_mailer_absent_without_api_key():
    assert ResendMailer.from_settings(Settings(resend_api_key=None)) is None
    assert isinstance(ResendMailer.from_settings(Settings(resend_api_key="re_x")), ResendMailer)
