from pydantic import BaseModel

from orchestrator.app.constants import ActorType
from orchestrator.app.domain.models import Actor


class ActorPayload(BaseModel):
    """Who is acting. Authentication happens upstream of this service."""

    id: str | None = None
    type: ActorType = ActorType.STAFF
    privileged: bool = False

    def to_actor(self) -> Actor:
        return Actor(id=self.id, type=self.type, privileged=self.privileged)


class ErrorResponse(BaseModel):
    error: str
    detail: str
    retryable: bool = False
