from datetime import datetime, timezone
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# --- Stored records ---
class UserCreate(CamelModel):
    username: str
    credential: str


class UserRecord(UserCreate):
    id: int


class ChatCreate(CamelModel):
    user_id: int
    title: str
    last_message: str = ""
    last_message_time: datetime = Field(default_factory=utcnow)
    icon: str = "comment"
    active: bool = True


class ChatRecord(ChatCreate):
    id: int


class MessageCreate(CamelModel):
    chat_id: int
    content: str
    sender: Literal["user", "bot"]
    timestamp: datetime = Field(default_factory=utcnow)


class MessageRecord(MessageCreate):
    id: int


# --- Auth ---
class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=128)


class UserResponse(BaseModel):
    id: int
    username: str

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str


# --- WebSocket requests ---
class GetChatsRequest(CamelModel):
    type: Literal["getChats"]


class GetMessagesRequest(CamelModel):
    type: Literal["getMessages"]
    chat_id: int


class CreateChatRequest(CamelModel):
    type: Literal["createChat"]


class SelectChatRequest(CamelModel):
    type: Literal["selectChat"]
    chat_id: int


class SendMessageRequest(CamelModel):
    type: Literal["message"]
    chat_id: int
    content: str = Field(..., min_length=1)


ClientRequest = Annotated[
    Union[
        GetChatsRequest,
        GetMessagesRequest,
        CreateChatRequest,
        SelectChatRequest,
        SendMessageRequest,
    ],
    Field(discriminator="type"),
]

client_request_adapter: TypeAdapter[ClientRequest] = TypeAdapter(ClientRequest)

REQUEST_TYPES = frozenset(
    ["getChats", "getMessages", "createChat", "selectChat", "message"]
)


# --- History turn passed to the completion service ---
class HistoryTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str

    @classmethod
    def from_message(cls, message: MessageRecord) -> "HistoryTurn":
        role = "user" if message.sender == "user" else "assistant"
        return cls(role=role, content=message.content)


def dump_records(records: List[BaseModel]) -> List[dict]:
    """JSON-ready camelCase dicts for a list of records."""
    return [record.model_dump(mode="json", by_alias=True) for record in records]

