"""
Repository dispatch trigger payloads.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, field_validator

from maccel_rpm.config import DEFAULT_FEDORA_VERSION
from maccel_rpm.models import PlatformTarget, ValidationError


class TriggerPayload(BaseModel):
    """client_payload of a build-kernel-packages dispatch event."""
    kernel_version: str
    fedora_version: str = DEFAULT_FEDORA_VERSION
    trigger_repo: Optional[str] = None
    force_rebuild: bool = False
    maccel_version: str = "latest"

    @field_validator("fedora_version", mode="before")
    @classmethod
    def coerce_fedora_version(cls, v: Any) -> Any:
        """Accept numbers as well as strings."""
        if v is None or v == "":
            return DEFAULT_FEDORA_VERSION
        return str(v) if isinstance(v, int) else v

    @field_validator("maccel_version", mode="before")
    @classmethod
    def default_maccel_version(cls, v: Any) -> Any:
        """Treat missing or empty versions as auto-detect."""
        return "latest" if v is None or v == "" else v

    @field_validator("force_rebuild", mode="before")
    @classmethod
    def parse_force_rebuild(cls, v: Any) -> Any:
        """Accept 'true'/'false' strings from workflow inputs."""
        if v is None or v == "":
            return False
        if isinstance(v, str):
            return v.strip().lower() == "true"
        return v

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> "TriggerPayload":
        """
        Parse a dispatch event or a bare payload.

        Raises:
            ValidationError: If the payload is missing fields or malformed
        """
        payload = event.get("client_payload", event) if isinstance(event, dict) else event
        try:
            return cls.model_validate(payload)
        except ValueError as e:
            raise ValidationError(f"Invalid trigger payload: {e}") from e

    @classmethod
    def from_file(cls, path: Path) -> "TriggerPayload":
        """Parse a payload from a JSON file such as $GITHUB_EVENT_PATH."""
        try:
            with open(path) as f:
                event = json.load(f)
        except (OSError, ValueError) as e:
            raise ValidationError(f"Cannot read trigger payload {path}: {e}") from e
        return cls.from_event(event)

    @property
    def requested_source_version(self) -> Optional[str]:
        """Explicit upstream version, or None for auto-detect."""
        return None if self.maccel_version == "latest" else self.maccel_version

    def to_target(self) -> PlatformTarget:
        """Build target described by this payload."""
        return PlatformTarget.from_strings(self.kernel_version, self.fedora_version)
