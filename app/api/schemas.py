from pydantic import AnyHttpUrl, BaseModel, Field

from app.domain.entities.session_state import SessionState


class StatusSchema(BaseModel):
    status: SessionState
    qr: str | None = None
    detail: str | None = None


class SendMessageSchema(BaseModel):
    to: str = Field(min_length=1)
    message: str = Field(min_length=1)


class SendOTPSchema(BaseModel):
    to: str = Field(min_length=1)
    otp: str = Field(min_length=1)
    expiryMinutes: int | None = Field(default=None, gt=0)


class SendMediaUrlSchema(BaseModel):
    to: str = ""
    url: str = ""
    caption: str | None = None
    filename: str | None = None


class SendGroupMessageSchema(BaseModel):
    groupId: str = Field(min_length=1)
    message: str = Field(min_length=1)


class CheckNumberSchema(BaseModel):
    phone: str = ""


class PollOptionSchema(BaseModel):
    name: str = Field(min_length=1)
    localId: int


class SendPollSchema(BaseModel):
    to: str = ""
    pollName: str = ""
    pollOptions: list[PollOptionSchema] = Field(default_factory=list)
    webhookUrl: AnyHttpUrl | None = None
    responseMessages: dict[str, str] = Field(default_factory=dict)
    allowMultipleAnswers: bool = False


class GroupSchema(BaseModel):
    id: str
    name: str
    participantCount: int = 0
