"""Pydantic models for request/response validation.

Field names follow the JSON the browser client already speaks (camelCase),
so request bodies bind without aliases. Required fields are declared optional
here and checked by the ledger and registry, which report them as
``ValidationError`` (400) instead of FastAPI's 422. Text lengths are
bounded by the database columns; longer values are rejected with 400.
"""
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .database import DEVICE_ID_MAX_LENGTH, NAME_MAX_LENGTH, POSITION_MAX_LENGTH


class VoteRequest(BaseModel):
    """Vote submission request model."""

    playerId: Optional[int] = Field(default=None, description="Player being voted for")
    deviceId: Optional[str] = Field(default=None, max_length=DEVICE_ID_MAX_LENGTH,
                                    description="Client-generated device token")

    @field_validator("deviceId")
    @classmethod
    def strip_device_id(cls, v):
        return v.strip() if isinstance(v, str) else v

    model_config = ConfigDict(
        json_schema_extra={"example": {"playerId": 1, "deviceId": "device-3f9a2c"}}
    )


class ResetVoteRequest(BaseModel):
    deviceId: Optional[str] = Field(default=None, max_length=DEVICE_ID_MAX_LENGTH)

    @field_validator("deviceId")
    @classmethod
    def strip_device_id(cls, v):
        return v.strip() if isinstance(v, str) else v


class LoginRequest(BaseModel):
    password: Optional[str] = None


class AddPlayerRequest(BaseModel):
    """New player submitted from the admin panel."""

    name: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    team: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    image: Optional[str] = None
    position: Optional[str] = Field(default=None, max_length=POSITION_MAX_LENGTH)

    @field_validator("name", "team", "image", "position")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"name": "Jane Doe", "team": "Blue", "image": "https://example.com/jane.png"}
        }
    )


class UpdateImageRequest(BaseModel):
    image: Optional[str] = None

    @field_validator("image")
    @classmethod
    def strip_image(cls, v):
        return v.strip() if isinstance(v, str) else v


class Player(BaseModel):
    """Player row as stored in the ``players`` table."""

    id: int
    name: str
    team: str
    position: Optional[str] = None
    votes: int = 0
    image: Optional[str] = None
    created_at: Optional[datetime] = None


class PlayersResponse(BaseModel):
    players: list[Player]
    totalVotes: int


class PlayerResponse(BaseModel):
    player: Player


class CheckVoteResponse(BaseModel):
    hasVoted: bool
    playerId: Optional[int] = None


class SuccessResponse(BaseModel):
    success: bool = True


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = False
    error: str = Field(..., description="Error message")
    alreadyVoted: Optional[bool] = None
    playerId: Optional[int] = None


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"] = Field(..., description="Overall health status")
    services: dict = Field(..., description="Status of individual services")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Health check timestamp")
