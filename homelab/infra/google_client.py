"""
Google Drive and Gmail REST clients over httpx.

Credentials come from an OAuth token file written by the dashboard's
authorization flow ({access_token, refresh_token, expiry_date(ms), ...}).
Expired access tokens are refreshed with GOOGLE_CLIENT_ID /
GOOGLE_CLIENT_SECRET and merged back into the file.

Every failure is raised as StorageError (Drive) or MailboxError (Gmail).
Both are HandlerErrors, so task handlers let them propagate.
"""

import base64
import json
import logging
import os
import re
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx

from homelab.scheduler.errors import HandlerError


logger = logging.getLogger(__name__)

TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
DRIVE_API = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"
GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id, name, mimeType, modifiedTime, size, parents, webViewLink"
DEFAULT_TIMEOUT = 120.0

# Refresh this many seconds before the recorded expiry
_EXPIRY_MARGIN_SECONDS = 60


class GoogleAPIError(HandlerError):
    """Base error for Google collaborators."""
    pass


class StorageError(GoogleAPIError):
    """Drive request failed or returned an unexpected payload."""
    pass


class MailboxError(GoogleAPIError):
    """Gmail request failed or returned an unexpected payload."""
    pass


# =========================================================================
# Credentials
# =========================================================================


class GoogleCredentials:
    """
    OAuth token file with refresh support.

    Thread-safe: concurrent firings share one instance.
    """

    def __init__(
        self,
        token_path: str | Path,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.token_path = Path(token_path)
        self.client_id = client_id or os.getenv("GOOGLE_CLIENT_ID", "")
        self.client_secret = client_secret or os.getenv("GOOGLE_CLIENT_SECRET", "")
        self._http = http_client
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self.token_path.exists()

    def _load(self) -> dict:
        if not self.token_path.exists():
            raise GoogleAPIError("Google authorization required: no token file")
        try:
            return json.loads(self.token_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise GoogleAPIError(f"Cannot read Google token file: {e}") from e

    def access_token(self) -> str:
        """Return a valid access token, refreshing it if expired."""
        with self._lock:
            tokens = self._load()
            expiry_ms = tokens.get("expiry_date")
            expired = (
                expiry_ms is not None
                and expiry_ms / 1000.0 - _EXPIRY_MARGIN_SECONDS <= time.time()
            )
            if tokens.get("access_token") and not expired:
                return tokens["access_token"]
            return self._refresh(tokens)

    def _refresh(self, tokens: dict) -> str:
        refresh_token = tokens.get("refresh_token")
        if not refresh_token:
            raise GoogleAPIError("Google access token expired and no refresh token is stored")

        logger.info("[GoogleAuth] Refreshing access token")
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            if self._http is not None:
                response = self._http.post(TOKEN_ENDPOINT, data=data)
            else:
                with httpx.Client(timeout=30.0) as client:
                    response = client.post(TOKEN_ENDPOINT, data=data)
        except httpx.RequestError as e:
            raise GoogleAPIError(f"Token refresh failed: {e}") from e

        if response.status_code >= 300:
            raise GoogleAPIError(
                f"Token refresh failed: HTTP {response.status_code}: {response.text[:200]}"
            )

        fresh = response.json()
        merged = {**tokens, **fresh}
        if "expires_in" in fresh:
            merged["expiry_date"] = int((time.time() + fresh["expires_in"]) * 1000)
        self.token_path.write_text(json.dumps(merged, indent=2), encoding="utf-8")
        return merged["access_token"]


class StaticCredentials:
    """Fixed access token, for tests and short-lived scripts."""

    def __init__(self, token: str):
        self.token = token

    @property
    def is_connected(self) -> bool:
        return True

    def access_token(self) -> str:
        return self.token


class _GoogleRESTClient:
    error_class: type[GoogleAPIError] = GoogleAPIError

    def __init__(self, credentials, http_client: Optional[httpx.Client] = None):
        self.credentials = credentials
        self._http = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT)

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            token = self.credentials.access_token()
        except GoogleAPIError as e:
            raise self.error_class(str(e)) from e

        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        try:
            response = self._http.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise self.error_class(f"Timeout calling {url}") from e
        except httpx.RequestError as e:
            raise self.error_class(f"Request error: {e}") from e

        if response.status_code >= 300:
            raise self.error_class(f"HTTP {response.status_code}: {response.text[:200]}")
        return response


# =========================================================================
# Drive
# =========================================================================


def _parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _quote(value: str) -> str:
    """Escape a value for a Drive query string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


@dataclass
class FileMeta:
    """Drive file or folder metadata."""

    id: str
    name: str
    mime_type: str = ""
    modified_time: Optional[datetime] = None
    size: Optional[int] = None
    web_view_link: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @classmethod
    def from_api(cls, data: dict) -> "FileMeta":
        size = data.get("size")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            modified_time=_parse_rfc3339(data.get("modifiedTime")),
            size=int(size) if size is not None else None,
            web_view_link=data.get("webViewLink"),
        )


class DriveClient(_GoogleRESTClient):
    """Remote folder and file operations on Google Drive."""

    error_class = StorageError

    def list_children(self, folder_id: str) -> list[FileMeta]:
        """List files and folders directly inside a folder (all pages)."""
        files: list[FileMeta] = []
        page_token: Optional[str] = None

        while True:
            params = {
                "q": f"'{_quote(folder_id)}' in parents and trashed = false",
                "fields": f"nextPageToken, files({FILE_FIELDS})",
                "pageSize": 1000,
            }
            if page_token:
                params["pageToken"] = page_token

            data = self._request("GET", f"{DRIVE_API}/files", params=params).json()
            files.extend(FileMeta.from_api(item) for item in data.get("files", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                return files

    def download(self, file_id: str) -> bytes:
        response = self._request("GET", f"{DRIVE_API}/files/{file_id}", params={"alt": "media"})
        return response.content

    def upload(
        self,
        name: str,
        data: bytes,
        parent_folder_id: Optional[str] = None,
        mime_type: str = "application/octet-stream",
    ) -> FileMeta:
        """Create a file with content (multipart upload)."""
        metadata: dict = {"name": name}
        if parent_folder_id:
            metadata["parents"] = [parent_folder_id]

        boundary = f"homelab-{uuid.uuid4().hex}"
        body = b"".join([
            f"--{boundary}\r\n".encode(),
            b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
            json.dumps(metadata).encode("utf-8"),
            f"\r\n--{boundary}\r\n".encode(),
            f"Content-Type: {mime_type}\r\n\r\n".encode(),
            data,
            f"\r\n--{boundary}--\r\n".encode(),
        ])

        response = self._request(
            "POST",
            f"{DRIVE_UPLOAD_API}/files",
            params={"uploadType": "multipart", "fields": FILE_FIELDS},
            content=body,
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
        )
        meta = FileMeta.from_api(response.json())
        logger.info(f"[Drive] Uploaded {meta.name} ({len(data)} bytes)")
        return meta

    def create_folder(self, name: str, parent_folder_id: Optional[str] = None) -> FileMeta:
        metadata: dict = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_folder_id:
            metadata["parents"] = [parent_folder_id]

        response = self._request(
            "POST", f"{DRIVE_API}/files", params={"fields": FILE_FIELDS}, json=metadata
        )
        meta = FileMeta.from_api(response.json())
        logger.info(f"[Drive] Created folder {name} ({meta.id})")
        return meta

    def find_by_name(
        self,
        name: str,
        parent_folder_id: Optional[str] = None,
        folders_only: bool = True,
    ) -> Optional[FileMeta]:
        """Find the first non-trashed item with this exact name, or None."""
        clauses = [f"name = '{_quote(name)}'", "trashed = false"]
        if folders_only:
            clauses.append(f"mimeType = '{FOLDER_MIME_TYPE}'")
        if parent_folder_id:
            clauses.append(f"'{_quote(parent_folder_id)}' in parents")

        data = self._request(
            "GET",
            f"{DRIVE_API}/files",
            params={"q": " and ".join(clauses), "fields": f"files({FILE_FIELDS})", "pageSize": 1},
        ).json()
        files = data.get("files", [])
        return FileMeta.from_api(files[0]) if files else None

    def find_or_create_folder(self, name: str, parent_folder_id: Optional[str] = None) -> FileMeta:
        existing = self.find_by_name(name, parent_folder_id)
        if existing is not None:
            return existing
        return self.create_folder(name, parent_folder_id)


# =========================================================================
# Gmail
# =========================================================================


def _b64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def extract_body(payload: Optional[dict]) -> str:
    """
    Extract readable text from a Gmail message payload.

    Prefers text/plain; falls back to tag-stripped text/html; walks
    nested multiparts.
    """
    if not payload:
        return ""

    data = (payload.get("body") or {}).get("data")
    if data and not payload.get("parts"):
        return _b64url_decode(data).decode("utf-8", errors="replace")

    parts = payload.get("parts") or []
    for part in parts:
        part_data = (part.get("body") or {}).get("data")
        mime_type = part.get("mimeType", "")
        if mime_type == "text/plain" and part_data:
            return _b64url_decode(part_data).decode("utf-8", errors="replace")
        if mime_type == "text/html" and part_data:
            html = _b64url_decode(part_data).decode("utf-8", errors="replace")
            return re.sub(r"\s+", " ", re.sub(r"<[^>]*>", " ", html)).strip()
        if part.get("parts"):
            nested = extract_body(part)
            if nested:
                return nested

    return ""


@dataclass
class MessageRef:
    id: str
    thread_id: Optional[str] = None


@dataclass
class MailAttachment:
    filename: str
    mime_type: str
    attachment_id: str
    size: int = 0
    data: Optional[bytes] = None


@dataclass
class MailMessage:
    id: str
    subject: str
    sender: str
    date: str
    body: str
    attachments: list[MailAttachment] = field(default_factory=list)


def _find_attachment_parts(parts: Optional[list]) -> list[MailAttachment]:
    found: list[MailAttachment] = []
    for part in parts or []:
        body = part.get("body") or {}
        if part.get("filename") and body.get("attachmentId"):
            found.append(
                MailAttachment(
                    filename=part["filename"],
                    mime_type=part.get("mimeType", "application/octet-stream"),
                    attachment_id=body["attachmentId"],
                    size=body.get("size", 0),
                )
            )
        if part.get("parts"):
            found.extend(_find_attachment_parts(part["parts"]))
    return found


class GmailClient(_GoogleRESTClient):
    """Read-only mailbox access."""

    error_class = MailboxError

    def list_unread(self, max_results: int = 10) -> list[MessageRef]:
        data = self._request(
            "GET",
            f"{GMAIL_API}/messages",
            params={"q": "is:unread", "maxResults": max_results},
        ).json()
        return [
            MessageRef(id=item["id"], thread_id=item.get("threadId"))
            for item in data.get("messages", [])
        ]

    def get_full(self, message_id: str) -> MailMessage:
        """
        Fetch a message with decoded body and attachment bytes.

        An attachment whose download fails is logged and left out.
        """
        data = self._request(
            "GET", f"{GMAIL_API}/messages/{message_id}", params={"format": "full"}
        ).json()

        payload = data.get("payload") or {}
        headers = {h["name"].lower(): h["value"] for h in payload.get("headers", [])}

        attachments = []
        for attachment in _find_attachment_parts(payload.get("parts")):
            try:
                attachment.data = self._get_attachment(message_id, attachment.attachment_id)
            except MailboxError as e:
                logger.warning(f"[Gmail] Attachment download failed: {attachment.filename}: {e}")
                continue
            attachments.append(attachment)

        return MailMessage(
            id=message_id,
            subject=headers.get("subject", "(no subject)"),
            sender=headers.get("from", "unknown"),
            date=headers.get("date", ""),
            body=extract_body(payload),
            attachments=attachments,
        )

    def _get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        data = self._request(
            "GET", f"{GMAIL_API}/messages/{message_id}/attachments/{attachment_id}"
        ).json()
        return _b64url_decode(data.get("data", ""))
