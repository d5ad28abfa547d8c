"""
Request schemas for the admin game and withdrawal endpoints.

Field names follow the dashboard's camelCase JSON. Required ids are
optional at the schema level so blank and missing values both surface as
the service layer's VALIDATION_ERROR.
"""

from typing import Optional, Union
from pydantic import BaseModel, Field, ConfigDict


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GameRequest(CamelModel):
    """Targets one game entry of a user's profile."""
    user_id: Optional[str] = Field(default=None, alias="userId")
    game_name: Optional[str] = Field(default=None, alias="gameName")


class AssignGameIdRequest(GameRequest):
    """Activate a game profile with its login."""
    game_id: Optional[str] = Field(default=None, alias="gameId")
    game_password: Optional[str] = Field(default=None, alias="gamePassword")


class WithdrawalRequest(CamelModel):
    """Targets one pending withdrawal of a user's wallet."""
    user_id: Optional[str] = Field(default=None, alias="userId")
    withdrawal_id: Optional[Union[int, str]] = Field(default=None, alias="withdrawalId")


class ApproveWithdrawalRequest(WithdrawalRequest):
    tx_hash: Optional[str] = Field(default=None, alias="txHash")
