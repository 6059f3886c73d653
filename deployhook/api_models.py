"""
Pydantic models for the webhook payload and the API responses.

Only the fields the receiver looks at are modelled; the rest of GitHub's
push payload is ignored.
"""

from pydantic import BaseModel, ValidationError

from deployhook.api_errors import MalformedPayloadError


# --- Inbound ---

class Repository(BaseModel):
    name: str | None = None
    full_name: str | None = None

class Pusher(BaseModel):
    name: str | None = None
    email: str | None = None

class WebhookPayload(BaseModel):
    ref: str | None = None
    repository: Repository | None = None
    pusher: Pusher | None = None


def parse_payload(raw_body: bytes) -> WebhookPayload | None:
    """Parse the raw body. Empty body -> None; anything else must be a JSON object."""
    if not raw_body:
        return None
    try:
        return WebhookPayload.model_validate_json(raw_body)
    except ValidationError as e:
        raise MalformedPayloadError(
            f"invalid webhook payload ({e.error_count()} errors)") from e


# --- Responses ---

class MessageResponse(BaseModel):
    message: str

class DeployResponse(BaseModel):
    message: str
    timestamp: str

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float
    version: str
    runtime_version: str
    platform: str
