"""
Review session: the state behind one browser tab working on one invoice.

    empty ──begin_extraction──▶ extracting ──complete_extraction──▶ reviewing
      ▲                             │                                   │
      │                             └──fail_extraction──▶ failed        │
      └──────────────── reset / try_again / finish_download ◀───────────┘

The record starts empty and is replaced wholesale by extraction; it can
only be edited while reviewing. Downloading the IRF returns the
session to empty but keeps the template so the next invoice can reuse it.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any
import uuid

from loguru import logger
from .errors import SessionStateError
from ..core.config import settings
from ..models.invoice import InvoiceRecord, LineItem, blank_line_item, empty_record


class SessionStatus(str, Enum):
    EMPTY = "empty"
    EXTRACTING = "extracting"
    REVIEWING = "reviewing"
    FAILED = "failed"


TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.EMPTY: {SessionStatus.EXTRACTING},
    SessionStatus.EXTRACTING: {SessionStatus.REVIEWING, SessionStatus.FAILED},
    SessionStatus.REVIEWING: {SessionStatus.EMPTY},
    SessionStatus.FAILED: {SessionStatus.EMPTY},
}


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class ReviewSession:
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: SessionStatus = SessionStatus.EMPTY
    invoice_file: UploadedFile | None = None
    template_file: UploadedFile | None = None
    record: InvoiceRecord = field(default_factory=lambda: empty_record(settings.default_currency))
    error_message: str | None = None
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def _move_to(self, target: SessionStatus) -> None:
        if target not in TRANSITIONS[self.status]:
            raise SessionStateError(f"Cannot go from '{self.status.value}' to '{target.value}'")
        logger.debug("Session transition", session_id=self.id, source=self.status.value, target=target.value)
        self.status = target

    def _require(self, *allowed: SessionStatus) -> None:
        if self.status not in allowed:
            names = ", ".join(s.value for s in allowed)
            raise SessionStateError(f"Not allowed while session is '{self.status.value}' (needs: {names})")

    # Uploads

    def attach_invoice(self, upload: UploadedFile) -> None:
        self._require(SessionStatus.EMPTY)
        self.invoice_file = upload
        self.error_message = None

    def attach_template(self, upload: UploadedFile) -> None:
        self._require(SessionStatus.EMPTY, SessionStatus.REVIEWING)
        self.template_file = upload
        self.error_message = None

    # Extraction

    def begin_extraction(self) -> UploadedFile:
        if self.status == SessionStatus.EMPTY and not (self.invoice_file and self.template_file):
            raise SessionStateError("Upload both the supplier invoice and the IRF template first")
        self._move_to(SessionStatus.EXTRACTING)
        self.error_message = None
        return self.invoice_file

    def complete_extraction(self, record: InvoiceRecord) -> None:
        self._move_to(SessionStatus.REVIEWING)
        self.record = record

    def fail_extraction(self, message: str) -> None:
        self._move_to(SessionStatus.FAILED)
        self.record = empty_record(settings.default_currency)
        self.error_message = message or "Failed to extract data."

    # Review edits (record is replaced, never mutated in place)

    def update_fields(self, changes: dict[str, Any]) -> InvoiceRecord:
        self._require(SessionStatus.REVIEWING)
        current = self.record.to_data()
        unknown = sorted(set(changes) - set(current))
        if unknown:
            raise ValueError(f"Unknown invoice field(s): {', '.join(unknown)}")
        self.record = InvoiceRecord.model_validate({**current, **changes})
        return self.record

    def update_line_item(self, index: int, changes: dict[str, Any]) -> LineItem:
        self._require(SessionStatus.REVIEWING)
        items = self._items()
        if not 0 <= index < len(items):
            raise IndexError(f"No line item at position {index}")
        current = items[index].model_dump(by_alias=True)
        unknown = sorted(set(changes) - set(current))
        if unknown:
            raise ValueError(f"Unknown line item field(s): {', '.join(unknown)}")
        items[index] = LineItem.model_validate({**current, **changes})
        self.record = self.record.model_copy(update={"line_items": items})
        return items[index]

    def add_line_item(self) -> LineItem:
        self._require(SessionStatus.REVIEWING)
        items = self._items()
        items.append(blank_line_item())
        self.record = self.record.model_copy(update={"line_items": items})
        return items[-1]

    def remove_line_item(self, index: int) -> None:
        self._require(SessionStatus.REVIEWING)
        items = self._items()
        if not 0 <= index < len(items):
            raise IndexError(f"No line item at position {index}")
        del items[index]
        self.record = self.record.model_copy(update={"line_items": items})

    def _items(self) -> list[LineItem]:
        return list(self.record.line_items or [])

    # Generation / reset

    def ready_to_generate(self) -> tuple[UploadedFile, InvoiceRecord]:
        self._require(SessionStatus.REVIEWING)
        if not self.template_file:
            raise SessionStateError("Please ensure both a template is uploaded and data is extracted.")
        return self.template_file, self.record

    def finish_download(self) -> None:
        """Back to the upload step for the next invoice, keeping the template"""
        self._move_to(SessionStatus.EMPTY)
        self.invoice_file = None
        self.record = empty_record(settings.default_currency)
        self.error_message = None

    def try_again(self) -> None:
        """Leave a failed extraction; the uploaded files are kept"""
        self._require(SessionStatus.FAILED)
        self._move_to(SessionStatus.EMPTY)
        self.error_message = None

    def reset(self) -> None:
        """Start over: drop files, record and error from any state"""
        logger.debug("Session reset", session_id=self.id, source=self.status.value)
        self.status = SessionStatus.EMPTY
        self.invoice_file = None
        self.template_file = None
        self.record = empty_record(settings.default_currency)
        self.error_message = None

    def to_dict(self) -> dict:
        def describe(upload: UploadedFile | None) -> dict | None:
            if upload is None:
                return None
            return {"filename": upload.filename, "contentType": upload.content_type, "size": upload.size}

        return {
            "id": self.id,
            "status": self.status.value,
            "invoiceFile": describe(self.invoice_file),
            "templateFile": describe(self.template_file),
            "record": self.record.to_data(),
            "errorMessage": self.error_message,
            "createdAt": self.created_at,
        }
