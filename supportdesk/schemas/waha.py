from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class WahaMessagePayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[Union[str, dict[str, Any]]] = None
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    body: Optional[str] = None
    fromMe: bool = False
    timestamp: Optional[int] = None
    hasMedia: bool = False
    pushName: Optional[str] = None
    author: Optional[str] = None
    data_: Optional[dict[str, Any]] = Field(default=None, alias="_data")

    def message_id(self) -> Optional[str]:
        if isinstance(self.id, dict):
            return self.id.get("_serialized")
        return self.id

    def sender_name(self) -> Optional[str]:
        if self.pushName:
            return self.pushName
        if self.data_ and self.data_.get("notifyName"):
            return self.data_["notifyName"]
        return self.author


class WahaWebhookRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: Optional[str] = None
    session: Optional[str] = None
    id: Optional[str] = None
    payload: Optional[WahaMessagePayload] = None


class WahaWebhookResponse(BaseModel):
    success: bool
    status: str  # processed, ignored, error
    message: Optional[str] = None
    session_id: Optional[str] = None
    response_sent: bool = False
    escalated: bool = False
