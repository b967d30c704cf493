"""Data types shared across the Gmail modules."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SecureMessageRequest:
    """Everything needed to build one outbound message.

    ``attachments`` are local file paths; each must pass the path guard.
    ``in_reply_to`` is the RFC 5322 Message-ID being answered and
    ``thread_id`` the Gmail thread to file the sent message under.
    """

    to: list[str]
    subject: str
    body: str = ""
    html_body: str | None = None
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    in_reply_to: str | None = None
    thread_id: str | None = None
    attachments: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BatchFailure:
    """One target that failed inside a batch, with the failure's message."""

    target: str
    error: str


@dataclass(frozen=True)
class BatchResult:
    """Per-item outcome of a batch: every target is either counted or listed."""

    success_count: int = 0
    failures: list[BatchFailure] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count


@dataclass(frozen=True)
class EmailAttachment:
    """Attachment metadata discovered while walking a message's MIME tree."""

    id: str
    filename: str
    mime_type: str
    size: int


@dataclass(frozen=True)
class EmailSummary:
    """Lightweight search hit (metadata headers only)."""

    id: str
    thread_id: str
    subject: str
    sender: str
    date: str
    snippet: str = ""


@dataclass(frozen=True)
class SearchResult:
    messages: list[EmailSummary]
    result_size_estimate: int = 0
    next_page_token: str | None = None


@dataclass(frozen=True)
class ParsedMessage:
    """A fully fetched message with bodies decoded and attachments listed."""

    id: str
    thread_id: str
    subject: str
    sender: str
    recipient: str
    date: str
    body: str
    html_body: str
    snippet: str
    label_ids: list[str] = field(default_factory=list)
    attachments: list[EmailAttachment] = field(default_factory=list)
