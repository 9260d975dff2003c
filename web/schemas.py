"""Request payload models for the ingress endpoints.

Only the fields tinyhci acts on are modelled; everything else in the
provider payloads is ignored.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

# GitHub sends this as "after" when a branch is deleted
NULL_SHA = "0" * 40


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PushPayload(_Payload):
    """GitHub push event."""

    ref: str = ""
    after: str
    deleted: bool = False

    @property
    def is_deletion(self) -> bool:
        return self.deleted or self.after == NULL_SHA


class CheckSuite(_Payload):
    head_sha: str


class CheckSuitePayload(_Payload):
    """GitHub check_suite event."""

    action: str
    check_suite: CheckSuite


class CheckRun(_Payload):
    head_sha: str
    name: str


class CheckRunPayload(_Payload):
    """GitHub check_run event."""

    action: str
    check_run: CheckRun


class BuildhookRequest(_Payload):
    """Artifact-ready notification.

    Accepts either tinyhci's own shape (``sha`` and optionally ``url``) or
    a CI provider notification carrying ``build_num`` and
    ``vcs_revision``, optionally wrapped in a ``payload`` object.
    """

    sha: str | None = None
    url: str | None = None
    build_num: int | None = None
    vcs_revision: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _unwrap_payload(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("payload"), dict):
            return data["payload"]
        return data

    @model_validator(mode="after")
    def _require_commit(self) -> BuildhookRequest:
        if not self.sha and not self.vcs_revision:
            raise ValueError("either sha or vcs_revision is required")
        return self

    @property
    def commit(self) -> str:
        """The commit the notification refers to."""
        return self.sha or self.vcs_revision or ""


__all__ = [
    "NULL_SHA",
    "BuildhookRequest",
    "CheckRunPayload",
    "CheckSuitePayload",
    "PushPayload",
]
