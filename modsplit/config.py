"""Configuration management for modsplit."""

import re
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

# Load .env from multiple locations
# 1. Current working directory
load_dotenv()
# 2. Project directory (where this package is installed)
_package_dir = Path(__file__).parent
load_dotenv(_package_dir.parent / ".env")
# 3. Home directory config
load_dotenv(Path.home() / ".config" / "modsplit" / ".env")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


class Config(BaseSettings):
    """Configuration for modsplit."""

    # Registration call shape: <register_object>.<register_property>(...)
    register_object: str = Field(default="System", description="Object identifier of the registration call")
    register_property: str = Field(default="register", description="Property identifier of the registration call")

    # Module artifacts
    symbol_prefix: str = Field(default="Register", description="Prefix of generated entry point names")
    module_extension: str = Field(default="js", description="File extension of generated module files")

    # Passes
    math_namespace: str = Field(default="Math", description="Global math namespace used by constant folding")
    fold_conditions: bool = Field(default=True, description="Replace statically decidable branch tests")
    reorder_switches: bool = Field(default=True, description="Unroll array-permutation driven switch loops")
    refold_after_reorder: bool = Field(
        default=True,
        description="Re-parse reordered output and fold conditions again",
    )

    # Output Settings
    output_suffix: str = Field(default="_modified", description="Suffix of the rewritten main file stem")

    model_config = {
        "env_prefix": "MODSPLIT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("register_object", "register_property", "symbol_prefix", "math_namespace")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Identifier-valued settings must be plain JavaScript identifiers."""
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"not a valid identifier: {v!r}")
        return v

    @field_validator("module_extension")
    @classmethod
    def normalize_extension(cls, v: str) -> str:
        """Accept both `js` and `.js`."""
        v = v.lstrip(".")
        if not v or not re.match(r"^[A-Za-z0-9]+$", v):
            raise ValueError(f"invalid module extension: {v!r}")
        return v
