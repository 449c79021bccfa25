"""
Pydantic schemas for the connection API.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ═══════════════════════════════════════════════════════════════════════════════
# Connections — records returned to callers
# ═══════════════════════════════════════════════════════════════════════════════


class ConnectionKeyPair(BaseModel):
    key: str
    value: str


class ApplicationSummary(BaseModel):
    app_id: int
    name: str
    description: Optional[str] = None
    logo: Optional[str] = None
    provider: Optional[str] = None


class ConnectionRecord(BaseModel):
    """
    A stored connection with its credential already decoded.  The raw
    ``connection_key`` text is never part of this schema.
    """

    connection_id: uuid.UUID
    user_id: uuid.UUID
    app_id: int
    connection_name: str
    connection_keys: List[ConnectionKeyPair] = Field(default_factory=list)
    sheet_id: Optional[str] = None
    sheet_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    application: Optional[ApplicationSummary] = None

    def key_mapping(self) -> Dict[str, str]:
        """Keys as a dict; the last occurrence wins."""
        return {pair.key: pair.value for pair in self.connection_keys}


class ConnectionUpdate(BaseModel):
    """
    Partial update.  Omitted (``None``) fields are left untouched;
    ``sheet_tab`` is merged into the decoded key pairs.
    """

    key: Optional[Union[str, List[str]]] = None
    name: Optional[str] = None
    sheet_id: Optional[str] = None
    sheet_name: Optional[str] = None
    sheet_tab: Optional[str] = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.key, self.name, self.sheet_id, self.sheet_name, self.sheet_tab)
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Request bodies
# ═══════════════════════════════════════════════════════════════════════════════


class _CamelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class CreateConnectionRequest(_CamelRequest):
    app_id: int = Field(..., alias="appId")
    connection_name: str = Field(..., alias="connectionName", min_length=1)
    # Encoded text in any legacy form, newline-separated lines, or a list
    connection_key: Union[List[str], str] = Field(..., alias="connectionKey")


class UpdateConnectionRequest(_CamelRequest):
    connection_key: Optional[Union[List[str], str]] = Field(None, alias="connectionKey")
    connection_name: Optional[str] = Field(None, alias="connectionName")
    sheet_id: Optional[str] = Field(None, alias="sheetId")
    sheet_name: Optional[str] = Field(None, alias="sheetName")
    sheet_tab: Optional[str] = Field(None, alias="sheetTab")


class EditKeysRequest(BaseModel):
    values: Dict[str, str]


class AuthorizeRequest(_CamelRequest):
    model_id: int = Field(..., alias="modelId")
    app_id: int = Field(..., alias="appId")
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    instruction: Optional[str] = None


class RefreshTokenRequest(_CamelRequest):
    connection_id: uuid.UUID = Field(..., alias="connectionId")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    access_token: Optional[str] = Field(None, alias="accessToken")


class UpdateSheetTabRequest(_CamelRequest):
    connection_id: Optional[uuid.UUID] = Field(None, alias="connectionId")
    sheet_tab: Optional[str] = Field(None, alias="sheetTab")
