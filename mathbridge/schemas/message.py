from pydantic import BaseModel, Field, ConfigDict


class MessageRequest(BaseModel):
    receiver_id: int = Field(..., alias="receiverId")
    content: str

    model_config = ConfigDict(populate_by_name=True)


class StatusResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str
