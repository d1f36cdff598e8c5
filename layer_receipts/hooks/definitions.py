"""
Hook configuration.

Raw hook definitions (from settings or code) are validated once, at load
time, and turned into immutable configuration objects. A receipts hook is
derived from a plain hook; the two are never the same object.
"""

import importlib
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from layer_receipts.hooks.durations import InvalidDurationError, parse_duration

RECEIPTS_SUFFIX = ":receipts"
DELAYED_JOB_SUFFIX = " delayed-job"
RECIPIENT_STATUSES = frozenset({"sent", "delivered", "read"})
RECEIPT_EVENTS = ("message.sent", "message.delivered", "message.read", "message.deleted")

IdentityResolver = Callable[[str], Awaitable[dict[str, Any] | None]]


class HookConfigError(ValueError):
    """Raised when a hook definition is invalid."""


class IdentityMode(str, Enum):
    OFF = "off"
    BUILTIN = "builtin"
    CUSTOM = "custom"


def normalize_path(path: str) -> str:
    path = (path or "").strip()
    return path if path.startswith("/") else f"/{path}"


@dataclass(frozen=True, slots=True)
class HookConfig:
    """A named webhook: where it listens and which events it wants."""

    name: str
    path: str
    events: tuple[str, ...] = ()
    delay_ms: int = 0


@dataclass(frozen=True, slots=True)
class ReceiptConfig:
    """Receipt tracking options for one hook."""

    delay_ms: int
    watched_statuses: frozenset[str]
    identity_mode: IdentityMode = IdentityMode.OFF
    resolver: IdentityResolver | None = field(default=None, compare=False)

    def __post_init__(self):
        if self.delay_ms < 0:
            raise HookConfigError("Receipt delay must not be negative")
        if not self.watched_statuses:
            raise HookConfigError("At least one watched status is required")
        unknown = set(self.watched_statuses) - RECIPIENT_STATUSES
        if unknown:
            raise HookConfigError(f"Unknown recipient statuses: {sorted(unknown)}")
        if self.identity_mode is IdentityMode.CUSTOM and self.resolver is None:
            raise HookConfigError("Custom identity mode needs a resolver")


@dataclass(frozen=True, slots=True)
class ReceiptHookConfig:
    """The receipts variant of a hook, namespaced under `<name>:receipts`."""

    name: str
    original_name: str
    path: str
    events: tuple[str, ...]
    receipts: ReceiptConfig

    @classmethod
    def derive(cls, hook: HookConfig, receipts: ReceiptConfig) -> "ReceiptHookConfig":
        return cls(
            name=f"{hook.name}{RECEIPTS_SUFFIX}",
            original_name=hook.name,
            path=hook.path,
            events=hook.events,
            receipts=receipts,
        )


# =================================================================
# Raw definitions, validated with pydantic at load time
# =================================================================


class HookDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    events: list[str] = Field(default_factory=list)
    delay: int | None = None

    @field_validator("delay", mode="before")
    @classmethod
    def _normalize_delay(cls, value):
        try:
            return parse_duration(value) if value is not None else None
        except InvalidDurationError as e:
            raise ValueError(str(e)) from e

    def to_config(self) -> HookConfig:
        return HookConfig(
            name=self.name,
            path=normalize_path(self.path),
            events=tuple(self.events),
            delay_ms=self.delay or 0,
        )


class ReceiptOptions(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    delay: int | None = None
    report_for_status: list[str] = Field(..., alias="reportForStatus", min_length=1)
    identities: bool | str = False

    @field_validator("delay", mode="before")
    @classmethod
    def _normalize_delay(cls, value):
        try:
            return parse_duration(value) if value is not None else None
        except InvalidDurationError as e:
            raise ValueError(str(e)) from e


class ReceiptHookDefinition(HookDefinition):
    receipts: ReceiptOptions


def resolve_identity_resolver(target: str) -> IdentityResolver:
    """Import `package.module:function` and return the function."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise HookConfigError(f"Identity resolver must look like 'module:function', got {target!r}")
    try:
        module = importlib.import_module(module_name)
        resolver = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise HookConfigError(f"Cannot import identity resolver {target!r}: {e}") from e
    if not callable(resolver):
        raise HookConfigError(f"Identity resolver {target!r} is not callable")
    return resolver


def _identity_settings(
    identities: bool | str | IdentityResolver,
) -> tuple[IdentityMode, IdentityResolver | None]:
    if callable(identities):
        return IdentityMode.CUSTOM, identities
    if identities is True:
        return IdentityMode.BUILTIN, None
    if identities is False:
        return IdentityMode.OFF, None

    value = identities.strip()
    if value.lower() in (IdentityMode.OFF.value, "false", ""):
        return IdentityMode.OFF, None
    if value.lower() in (IdentityMode.BUILTIN.value, "true"):
        return IdentityMode.BUILTIN, None
    return IdentityMode.CUSTOM, resolve_identity_resolver(value)


def build_receipt_hook(
    definition: ReceiptHookDefinition,
    resolver: IdentityResolver | None = None,
) -> ReceiptHookConfig:
    """Derive the receipts hook config from a validated definition."""
    delay_ms = definition.receipts.delay
    if delay_ms is None:
        delay_ms = definition.delay
    if delay_ms is None:
        raise HookConfigError(f"{definition.name}: receipts hooks need a delay")

    mode, custom = _identity_settings(resolver or definition.receipts.identities)
    receipts = ReceiptConfig(
        delay_ms=delay_ms,
        watched_statuses=frozenset(definition.receipts.report_for_status),
        identity_mode=mode,
        resolver=custom,
    )
    hook = definition.to_config()
    if not hook.events:
        hook = replace(hook, events=RECEIPT_EVENTS)
    return ReceiptHookConfig.derive(hook, receipts)


def load_hook_configs(raw_hooks: Iterable[dict[str, Any]]) -> list[HookConfig]:
    try:
        return [HookDefinition.model_validate(raw).to_config() for raw in raw_hooks]
    except ValidationError as e:
        raise HookConfigError(f"Invalid hook definition: {e}") from e


def load_receipt_hook_configs(raw_hooks: Iterable[dict[str, Any]]) -> list[ReceiptHookConfig]:
    try:
        definitions = [ReceiptHookDefinition.model_validate(raw) for raw in raw_hooks]
    except ValidationError as e:
        raise HookConfigError(f"Invalid receipts hook definition: {e}") from e
    return [build_receipt_hook(definition) for definition in definitions]


def ensure_unique_hooks(*hook_groups: Iterable[HookConfig | ReceiptHookConfig]) -> None:
    """Hook names are a correlation namespace and paths are routes; neither may repeat."""
    names: set[str] = set()
    paths: set[str] = set()
    for group in hook_groups:
        for hook in group:
            if hook.name in names:
                raise HookConfigError(f"Duplicate hook name: {hook.name}")
            if hook.path in paths:
                raise HookConfigError(f"Duplicate hook path: {hook.path}")
            names.add(hook.name)
            paths.add(hook.path)
