"""Configuration for rbacgate.

``RbacConfig`` is a Pydantic-validated model holding the logging switches,
the permission-expression grammar and the arbitration policy used by the
decision combinators. ``load_config_from_env`` is the only place where
environment variables are read.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class TieBreak(str, Enum):
    """Which side wins when an allow weight equals a deny weight.

    - DENY_WINS: equal weights restrict (``deny`` uses ``<=``, ``check`` uses ``<``).
    - ALLOW_WINS: equal weights grant.
    """

    DENY_WINS = "deny_wins"
    ALLOW_WINS = "allow_wins"


class RbacConfig(BaseModel):
    """Configuration for the permission parser and the decision combinators.

    Environment variables (see ``load_config_from_env``):
        RBAC_LOG_LEVEL               DEBUG | INFO | WARNING | ERROR | CRITICAL
        RBAC_LOG_JSON                JSON log output (true/false)
        RBAC_OR_SEPARATOR            single character between OR groups
        RBAC_AND_SEPARATOR           token between AND-ed permissions
        RBAC_DENY_TIE_BREAK          deny_wins | allow_wins
        RBAC_CHECK_TIE_BREAK         deny_wins | allow_wins
        RBAC_CHECK_USES_CHAIN_STATE  fold check grants into the request state
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Permission expression grammar
    or_separator: str = Field(
        default=",",
        description="Single character separating OR groups in a permission string",
    )
    and_separator: str = Field(
        default="&&",
        description="Token separating AND-ed permissions inside a group",
    )

    # Arbitration policy
    deny_tie_break: TieBreak = Field(
        default=TieBreak.DENY_WINS,
        description="Standalone deny: whether an equal allowed weight still restricts",
    )
    check_tie_break: TieBreak = Field(
        default=TieBreak.DENY_WINS,
        description="check: whether equal allow/deny weights restrict",
    )
    check_uses_chain_state: bool = Field(
        default=False,
        description="Fold check grants into the running allowed weight of the request",
    )

    # Outcome surface
    json_media_types: list[str] = Field(
        default_factory=lambda: ["application/json", "application/grpc"],
        description="Accept values treated as machine-readable (never redirected)",
    )

    @field_validator("or_separator")
    @classmethod
    def validate_or_separator(cls, v: str) -> str:
        """OR separator must be one visible character."""
        if len(v) != 1 or v.isspace():
            raise ValueError("OR separator must be a single non-whitespace character")
        return v

    @field_validator("and_separator")
    @classmethod
    def validate_and_separator(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("AND separator must not be empty")
        return v.strip()

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    @model_validator(mode="after")
    def validate_separators_differ(self) -> RbacConfig:
        if self.or_separator in self.and_separator:
            raise ValueError("AND separator must not contain the OR separator")
        return self

    model_config = {
        "extra": "forbid",
    }


def load_config_from_env() -> RbacConfig:
    """Load configuration from environment variables.

    Environment variables:
    - RBAC_LOG_LEVEL: Logging level (default: INFO)
    - RBAC_LOG_JSON: Use JSON log format (true/false, default: false)
    - RBAC_OR_SEPARATOR: OR separator (default: ",")
    - RBAC_AND_SEPARATOR: AND separator (default: "&&")
    - RBAC_DENY_TIE_BREAK: deny_wins | allow_wins (default: deny_wins)
    - RBAC_CHECK_TIE_BREAK: deny_wins | allow_wins (default: deny_wins)
    - RBAC_CHECK_USES_CHAIN_STATE: true/false (default: false)

    Returns:
        RbacConfig instance with values from environment or defaults.
    """
    import os

    truthy = ("true", "1", "yes", "on")

    return RbacConfig(
        log_level=os.getenv("RBAC_LOG_LEVEL", "INFO"),
        log_json=os.getenv("RBAC_LOG_JSON", "false").lower() in truthy,
        or_separator=os.getenv("RBAC_OR_SEPARATOR", ","),
        and_separator=os.getenv("RBAC_AND_SEPARATOR", "&&"),
        deny_tie_break=os.getenv("RBAC_DENY_TIE_BREAK", TieBreak.DENY_WINS.value).lower(),
        check_tie_break=os.getenv("RBAC_CHECK_TIE_BREAK", TieBreak.DENY_WINS.value).lower(),
        check_uses_chain_state=os.getenv("RBAC_CHECK_USES_CHAIN_STATE", "false").lower() in truthy,
    )


__all__ = [
    "LogLevel",
    "RbacConfig",
    "TieBreak",
    "load_config_from_env",
]
