"""Mini README: Pydantic request models for the ledger API.

Structure:
    * SavingsRequest - body of ``POST /api/savings``.
    * ResetRequest - optional body of ``POST /api/reset``.

Fields are optional and strictly typed: a missing value still reaches the
service, which owns the "required" and range rules, while strings or
booleans in place of numbers fail model validation and are reported as a
400 by the application's validation handler.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr


class SavingsRequest(BaseModel):
    """Amount to add to a device total."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: Optional[StrictStr] = Field(None, alias="deviceId")
    amount: Optional[Union[StrictInt, StrictFloat]] = None


class ResetRequest(BaseModel):
    """Device whose total should be reset."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: Optional[StrictStr] = Field(None, alias="deviceId")
