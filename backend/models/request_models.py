"""
Request Models for ConfSync Agent API Endpoints
Pydantic models for API request validation
"""

import re
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DeployRequest(BaseModel):
    """Encrypted configuration deploy request (POST /deploy)"""
    config_path: str = Field(..., alias="configPath", min_length=1,
                             description="Path of the configuration file to replace")
    service_name: str = Field(..., alias="serviceName", min_length=1, max_length=256,
                              description="Unit name passed verbatim to the service manager")
    content: str = Field(..., description='base64 envelope: "Salted__" + 8-byte salt + ciphertext')
    timeout: int = Field(..., ge=0,
                         description="Seconds to wait for the service to become active before rolling back")

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "configPath": "/etc/sing-box/config.json",
                "serviceName": "sing-box",
                "content": "U2FsdGVkX1+...",
                "timeout": 10
            }
        }
    )

    @field_validator('config_path')
    @classmethod
    def validate_config_path(cls, v: str) -> str:
        """Reject values no filesystem call can accept"""
        if '\x00' in v:
            raise ValueError('Config path cannot contain NUL bytes')
        return v

    @field_validator('service_name')
    @classmethod
    def validate_service_name(cls, v: str) -> str:
        """Reject values systemctl would parse as options"""
        if v.startswith('-'):
            raise ValueError('Service name cannot start with "-"')
        if re.search(r'\s', v):
            raise ValueError('Service name cannot contain whitespace')
        if '\x00' in v:
            raise ValueError('Service name cannot contain NUL bytes')
        return v


class BackupEntry(BaseModel):
    """Backup blob uploaded by the client (POST /backup)"""
    id: str = Field(..., min_length=1, max_length=200)
    tag: str = Field(..., max_length=200)
    files: Dict[str, str] = Field(default_factory=dict)
