"""Director request schemas.

One explicit model per action, discriminated on ``action``.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from pokerleague.models import RebuyKind
from pokerleague.utils.errors import ErrorCode, ValidationError


class BaseRequest(BaseModel):
    """Base request with common configuration."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="forbid",
        frozen=True,
    )

    tournament_id: str = Field(..., alias="tournamentId", min_length=1)


# =============================================================================
# Core actions
# =============================================================================


class BustRequest(BaseRequest):
    """Chip loss during the rebuy window."""

    action: Literal["bust"] = "bust"
    eliminated_id: str = Field(..., alias="eliminatedId", min_length=1)
    killer_id: Optional[str] = Field(default=None, alias="killerId")


class EliminationRequest(BaseRequest):
    """Definitive elimination after the rebuy window."""

    action: Literal["eliminate"] = "eliminate"
    eliminated_id: str = Field(..., alias="eliminatedId", min_length=1)
    eliminator_id: str = Field(..., alias="eliminatorId", min_length=1)


class RebuyRequest(BaseRequest):
    """Standard or light rebuy."""

    action: Literal["rebuy"] = "rebuy"
    player_id: str = Field(..., alias="playerId", min_length=1)
    kind: RebuyKind = RebuyKind.STANDARD


# =============================================================================
# Follow-up actions
# =============================================================================


class RecaveFromBustRequest(BaseRequest):
    """Standard rebuy answering a recorded bust."""

    action: Literal["recave"] = "recave"
    bust_id: str = Field(..., alias="bustId", min_length=1)


class CancelLastRebuyRequest(BaseRequest):
    action: Literal["cancel_rebuy"] = "cancel_rebuy"


class CancelLastEliminationRequest(BaseRequest):
    action: Literal["cancel_elimination"] = "cancel_elimination"


EngineRequest = Annotated[
    Union[
        BustRequest,
        EliminationRequest,
        RebuyRequest,
        RecaveFromBustRequest,
        CancelLastRebuyRequest,
        CancelLastEliminationRequest,
    ],
    Field(discriminator="action"),
]

_request_adapter: TypeAdapter = TypeAdapter(EngineRequest)


def parse_request(payload: dict[str, Any]) -> EngineRequest:
    """Validate a raw payload into one of the request variants.

    Raises:
        ValidationError: Unknown action or malformed fields
    """
    try:
        return _request_adapter.validate_python(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid request",
            code=ErrorCode.INVALID_REQUEST,
            details={
                "errors": [
                    {"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()
                ]
            },
        ) from e
