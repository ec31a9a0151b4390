"""Pydantic records exchanged by the relay pipeline and the retry queue."""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EmailAddress(BaseModel):
    """A display name and a bare address (no angle brackets, no quotes)."""
    model_config = ConfigDict(frozen=True)
    name: str = ""
    email: str = ""


class EmailBody(BaseModel):
    """Decoded plain text and HTML sections; either may be absent."""
    model_config = ConfigDict(frozen=True)
    text: Optional[str] = None
    html: Optional[str] = None


class StructuredEmail(BaseModel):
    """Canonical record posted to the webhook for every inbound message."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)
    subject: str = ""
    from_: EmailAddress = Field(default_factory=EmailAddress, alias="from")
    to: List[EmailAddress] = Field(default_factory=list)
    cc: List[EmailAddress] = Field(default_factory=list)
    bcc: List[EmailAddress] = Field(default_factory=list)
    date: str = ""
    message_id: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)
    body: EmailBody = Field(default_factory=EmailBody)
    raw_content: str = ""

    def to_payload(self) -> Dict:
        """Return the JSON-ready dict sent to the webhook."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FailedRequest(BaseModel):
    """Retry queue entry; holds message data and retry metadata only.

    Timestamps are milliseconds since the epoch. The webhook endpoint and
    token are never stored here.
    """
    model_config = ConfigDict(populate_by_name=True)
    id: str
    email: StructuredEmail
    attempt_count: int = Field(default=0, alias="attemptCount")
    first_attempt_timestamp: int = Field(alias="firstAttemptTimestamp")
    last_attempt_timestamp: int = Field(alias="lastAttemptTimestamp")
    next_retry_timestamp: int = Field(alias="nextRetryTimestamp")
    last_error: Optional[str] = Field(default=None, alias="lastError")
    permanently_failed: Optional[bool] = Field(default=None, alias="permanentlyFailed")

    def to_json(self) -> str:
        """Serialize with the camelCase names used in the store."""
        return self.model_dump_json(by_alias=True, exclude_none=True)
