from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class PathsCfg(BaseModel):
    transmit_root: str
    queued: str
    output: str
    logs_root: str = "logs"
    run_logs: str = "RunLogs"
    id_store: str = "id_store.yaml"
    element_map: Optional[str] = None


class ApiCfg(BaseModel):
    submission_endpoint: str
    timeout_seconds: float = 60.0


class AuthCfg(BaseModel):
    token_endpoint: str
    system_identifier: str
    audience: str
    scope: str = "/submission"
    private_key_path: str
    token_lifetime_seconds: int = 300


class QueueCfg(BaseModel):
    search_pattern: str = "*.dat"


class MappingCfg(BaseModel):
    hcn_absent_policy: Literal["omit", "data-absent-reason"] = "omit"
    hcn_sentinels: Dict[str, str] = {"unknown": "unknown"}
    reference_style: Literal["relative", "full-url"] = "relative"


class ValidationCfg(BaseModel):
    strict_update_ids: bool = True


class Settings(BaseModel):
    app: Dict[str, Any] = Field(default_factory=dict, validate_default=True)
    paths: PathsCfg
    api: Optional[ApiCfg] = None
    auth: Optional[AuthCfg] = None
    queue: QueueCfg = QueueCfg()
    mapping: MappingCfg = MappingCfg()
    validation: ValidationCfg = ValidationCfg()

    @field_validator("app")
    @classmethod
    def _default_name(cls, v: Dict[str, Any]):
        v.setdefault("name", "ltcf-ingestor")
        return v
