"""Credentials identifying the caller: a project or an organization."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Optional, Union

from ..config import Environment
from .keys import PrivateKey


def _coerce_environment(value: Union[Environment, str]) -> Environment:
    try:
        return Environment(value)
    except ValueError:
        raise ValueError(f"environment must be one of {[env.value for env in Environment]}, got {value!r}") from None


@dataclass(frozen=True)
class User(ABC):
    """Base credential. One identity, one environment, one private key."""

    id: str
    private_key: PrivateKey = field(repr=False)
    environment: Environment = Environment.SANDBOX

    def __post_init__(self) -> None:
        if not self.id or not str(self.id).strip():
            raise ValueError("id must be a non-empty string")
        object.__setattr__(self, "id", str(self.id).strip())
        object.__setattr__(self, "private_key", PrivateKey.coerce(self.private_key))
        object.__setattr__(self, "environment", _coerce_environment(self.environment))

    @property
    @abstractmethod
    def access_id(self) -> str:
        """Identity tag sent as ``Access-Id``."""


@dataclass(frozen=True)
class Project(User):
    @property
    def access_id(self) -> str:
        return f"project/{self.id}"


@dataclass(frozen=True)
class Organization(User):
    workspace_id: Optional[str] = None

    @property
    def access_id(self) -> str:
        if self.workspace_id:
            return f"organization/{self.id}/workspace/{self.workspace_id}"
        return f"organization/{self.id}"

    def with_workspace(self, workspace_id: Optional[str]) -> "Organization":
        """Return the same organization credential scoped to ``workspace_id``."""
        return replace(self, workspace_id=workspace_id)
