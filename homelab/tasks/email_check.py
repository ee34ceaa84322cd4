"""
Email check: summarize new mail, file attachments on Drive, archive the text.

Idempotency is enforced through the DedupLedger:

1. an unread message whose id is already in the ledger is skipped
   before any side effect;
2. the id is added only after the uploads, archive and notification for
   that message have completed.

A crash between (side effects) and (ledger add) re-processes the
message on the next run. Failures are isolated: a failing attachment
does not stop its message, and a failing message does not stop its
siblings. The outcome reports counts instead of aborting.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePath
from typing import Optional

from homelab.infra.ai_provider import AIService, ProviderError
from homelab.infra.event_bus import EventBus
from homelab.infra.google_client import DriveClient, GmailClient, MailAttachment, MailMessage
from homelab.scheduler.entities import JobType
from homelab.scheduler.errors import PersistenceError
from homelab.scheduler.persistence import DedupLedger, NotificationStore, UploadLogStore

from .base import TaskHandler
from .config import EmailCheckConfig


logger = logging.getLogger(__name__)

EMAIL_NOTIFICATION_EVENT = "email-notification"
EMAIL_DRIVE_UPLOAD_EVENT = "email-drive-upload"

ARCHIVE_FOLDER = "Email_Archive"
DEFAULT_FOLDER = "Email_Attachments"

SPREADSHEET_EXTENSIONS = {".xlsx", ".xls", ".csv"}
DOCUMENT_EXTENSIONS = {".pdf", ".doc", ".docx"}
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

CATEGORIES = ("tax", "contract", "consulting", "marketing", "hr", "other")

SUMMARY_PROMPT = """Summarize the following email in at most three lines.
Include the key point and any action the recipient needs to take.

Subject: {subject}
From: {sender}
Body:
{body}

Summary:"""

CLASSIFY_PROMPT = """File name: {filename}
Email subject: {subject}
Content excerpt: {excerpt}

Reply with JSON only: {{"category": "{categories}", "folderName": "<Drive folder name>"}}"""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class Classification:
    category: str
    folder: str


def default_classification(filename: str) -> Classification:
    """Extension-based classification used when no AI override applies."""
    ext = PurePath(filename).suffix.lower()
    if ext in SPREADSHEET_EXTENSIONS:
        return Classification(category="tax", folder="Tax_Accounting")
    if ext in IMAGE_EXTENSIONS:
        return Classification(category="image", folder="Images")
    return Classification(category="other", folder=DEFAULT_FOLDER)


def parse_classification(text: str, fallback: Classification) -> Classification:
    """Read {"category", "folderName"} out of a model reply; keep fallback fields on failure."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        return fallback
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return fallback
    if not isinstance(parsed, dict):
        return fallback

    category = str(parsed.get("category") or "").strip() or fallback.category
    folder = str(parsed.get("folderName") or "").strip().replace("/", "_")[:100] or fallback.folder
    return Classification(category=category, folder=folder)


def archive_filename(subject: str, received: Optional[datetime] = None) -> str:
    day = (received or datetime.now()).strftime("%Y-%m-%d")
    safe_subject = re.sub(r"[^\w]", "_", subject)[:50]
    return f"{day}_{safe_subject}.txt"


class EmailCheckHandler(TaskHandler):
    job_type = JobType.EMAIL_CHECK
    config_model = EmailCheckConfig

    def __init__(
        self,
        gmail: GmailClient,
        drive: DriveClient,
        ai: AIService,
        dedup: DedupLedger,
        notifications: NotificationStore,
        uploads: UploadLogStore,
        event_bus: EventBus,
    ):
        self.gmail = gmail
        self.drive = drive
        self.ai = ai
        self.dedup = dedup
        self.notifications = notifications
        self.uploads = uploads
        self.event_bus = event_bus

    def execute(self, config: dict) -> str:
        cfg: EmailCheckConfig = self.parse_config(config)

        # A mailbox listing failure fails the whole run
        refs = self.gmail.list_unread(max_results=cfg.max_results)
        if not refs:
            return "No new email"

        processed = skipped = failed = 0
        uploaded = upload_failed = 0

        for ref in refs:
            if self.dedup.contains(ref.id):
                skipped += 1
                continue

            try:
                message = self.gmail.get_full(ref.id)
                ok, bad = self._process_message(message, cfg)
            except Exception as e:
                failed += 1
                logger.warning(f"[EmailCheck] Message {ref.id} failed: {e}", exc_info=True)
                continue

            self.dedup.add(ref.id)
            processed += 1
            uploaded += ok
            upload_failed += bad

        logger.info(
            f"[EmailCheck] processed={processed} skipped={skipped} failed={failed} "
            f"uploads={uploaded} upload_failures={upload_failed}"
        )

        if processed == 0 and failed == 0:
            return f"No new email ({skipped} already processed)"

        return (
            f"Processed {processed} email(s), skipped {skipped}, failed {failed}; "
            f"attachments uploaded {uploaded}, failed {upload_failed}"
        )

    def _process_message(self, message: MailMessage, cfg: EmailCheckConfig) -> tuple[int, int]:
        summary = self._summarize(message, cfg.summary_model)

        ok = bad = 0
        for attachment in message.attachments:
            try:
                self._file_attachment(attachment, message.subject, cfg.classify_model)
                ok += 1
            except Exception as e:
                bad += 1
                logger.warning(f"[EmailCheck] Attachment {attachment.filename} failed: {e}")

        self._archive(message, summary)

        self.notifications.add(
            "email",
            f"Email: {message.subject}",
            f"From: {message.sender}\nSummary: {summary}",
        )
        self.event_bus.publish(EMAIL_NOTIFICATION_EVENT, {
            "subject": message.subject,
            "from": message.sender,
            "summary": summary,
            "date": message.date,
            "messageId": message.id,
        })
        return ok, bad

    def _summarize(self, message: MailMessage, model: Optional[str]) -> str:
        prompt = SUMMARY_PROMPT.format(
            subject=message.subject,
            sender=message.sender,
            body=message.body[:3000],
        )
        try:
            return self.ai.complete(prompt, model=model).strip()
        except ProviderError as e:
            logger.warning(f"[EmailCheck] Summary unavailable for {message.id}: {e}")
            return f"(summary unavailable: {e})"

    def classify(self, attachment: MailAttachment, subject: str, model: Optional[str]) -> Classification:
        fallback = default_classification(attachment.filename)
        if PurePath(attachment.filename).suffix.lower() not in DOCUMENT_EXTENSIONS:
            return fallback

        excerpt = (attachment.data or b"").decode("utf-8", errors="ignore")[:2000]
        prompt = CLASSIFY_PROMPT.format(
            filename=attachment.filename,
            subject=subject,
            excerpt=excerpt,
            categories="|".join(CATEGORIES),
        )
        try:
            reply = self.ai.complete(prompt, model=model)
        except ProviderError as e:
            logger.info(f"[EmailCheck] Classification fell back to extension for {attachment.filename}: {e}")
            return fallback
        return parse_classification(reply, fallback)

    def _file_attachment(self, attachment: MailAttachment, subject: str, model: Optional[str]) -> None:
        classification = self.classify(attachment, subject, model)
        folder = self.drive.find_or_create_folder(classification.folder)
        uploaded = self.drive.upload(attachment.filename, attachment.data or b"", folder.id, attachment.mime_type)

        # The file is already on Drive; a failed audit row must not count it as failed
        try:
            self.uploads.record(
                attachment.filename,
                uploaded.id,
                classification.folder,
                classification.category,
            )
        except PersistenceError as e:
            logger.warning(f"[EmailCheck] Upload log write failed for {attachment.filename}: {e}")

        self.event_bus.publish(EMAIL_DRIVE_UPLOAD_EVENT, {
            "filename": attachment.filename,
            "category": classification.category,
            "folder": classification.folder,
        })

    def _archive(self, message: MailMessage, summary: str) -> None:
        content = (
            f"Subject: {message.subject}\n"
            f"From: {message.sender}\n"
            f"Date: {message.date}\n\n"
            f"[AI summary]\n{summary}\n\n"
            f"[Original]\n{message.body[:5000]}"
        )
        folder = self.drive.find_or_create_folder(ARCHIVE_FOLDER)
        self.drive.upload(
            archive_filename(message.subject),
            content.encode("utf-8"),
            folder.id,
            "text/plain",
        )
