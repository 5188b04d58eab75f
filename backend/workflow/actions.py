"""Workflow definitions and the closed set of action types.

Stored definitions are plain JSON. They are parsed once into frozen
dataclasses so the scheduler and executors work on typed values, and the
same parsed form is what gets snapshotted onto executions.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from core.constants import MESSAGING_ACTIONS, ActionType, Channel, TriggerType
from core.exceptions import ValidationError
from core.utils import to_float


@dataclass(frozen=True)
class BaseAction:
    id: str
    delay: float = 0.0  # minutes to wait before executing

    type: ActionType = field(init=False, default=ActionType.DELAY)

    def config_dict(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "delay": self.delay,
            "config": self.config_dict(),
        }


@dataclass(frozen=True)
class SendEmailAction(BaseAction):
    subject: str = ""
    body: str = ""
    text_body: Optional[str] = None
    template_ref: Optional[str] = None
    from_email: Optional[str] = None
    from_name: Optional[str] = None

    type: ActionType = field(init=False, default=ActionType.SEND_EMAIL)

    def config_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "body": self.body,
            "text_body": self.text_body,
            "template_ref": self.template_ref,
            "from_email": self.from_email,
            "from_name": self.from_name,
        }


@dataclass(frozen=True)
class SendSmsAction(BaseAction):
    message: str = ""
    from_number: Optional[str] = None

    type: ActionType = field(init=False, default=ActionType.SEND_SMS)

    def config_dict(self) -> dict[str, Any]:
        return {"message": self.message, "from_number": self.from_number}


@dataclass(frozen=True)
class DelayAction(BaseAction):
    duration_minutes: float = 0.0

    type: ActionType = field(init=False, default=ActionType.DELAY)

    def config_dict(self) -> dict[str, Any]:
        return {"duration_minutes": self.duration_minutes}


@dataclass(frozen=True)
class AddTagAction(BaseAction):
    tags: tuple[str, ...] = ()

    type: ActionType = field(init=False, default=ActionType.ADD_TAG)

    def config_dict(self) -> dict[str, Any]:
        return {"tags": list(self.tags)}


@dataclass(frozen=True)
class RemoveTagAction(BaseAction):
    tags: tuple[str, ...] = ()

    type: ActionType = field(init=False, default=ActionType.REMOVE_TAG)

    def config_dict(self) -> dict[str, Any]:
        return {"tags": list(self.tags)}


@dataclass(frozen=True)
class UpdateContactAction(BaseAction):
    updates: dict[str, Any] = field(default_factory=dict)

    type: ActionType = field(init=False, default=ActionType.UPDATE_CONTACT)

    def config_dict(self) -> dict[str, Any]:
        return {"updates": dict(self.updates)}


Action = Union[
    SendEmailAction,
    SendSmsAction,
    DelayAction,
    AddTagAction,
    RemoveTagAction,
    UpdateContactAction,
]


# ─── Validation ───

def _first(config: dict, *keys: str) -> Any:
    for key in keys:
        if config.get(key) not in (None, ""):
            return config[key]
    return None


def _tags(config: dict) -> list[str]:
    tags = config.get("tags")
    if tags is None and config.get("tag"):
        tags = [config["tag"]]
    if isinstance(tags, str):
        tags = [tags]
    return [str(t).strip() for t in (tags or []) if str(t).strip()]


def validate_action_config(action_type: ActionType, config: dict, delay: Any = 0) -> list[str]:
    """Return a list of problems with one action's configuration."""
    errors: list[str] = []
    delay_value = to_float(delay if delay is not None else 0)
    if delay_value is None or delay_value < 0:
        errors.append("delay must be a non-negative number")

    if action_type == ActionType.SEND_EMAIL:
        if not _first(config, "subject"):
            errors.append("send_email requires a subject")
        if not _first(config, "body", "html_content", "htmlContent", "template_ref", "templateRef"):
            errors.append("send_email requires a body or template_ref")
    elif action_type == ActionType.SEND_SMS:
        if not _first(config, "message"):
            errors.append("send_sms requires a message")
    elif action_type == ActionType.DELAY:
        duration = _first(config, "duration_minutes", "durationMinutes", "minutes")
        if duration is not None and (to_float(duration) is None or to_float(duration) < 0):
            errors.append("delay duration must be a non-negative number")
    elif action_type in (ActionType.ADD_TAG, ActionType.REMOVE_TAG):
        if not _tags(config):
            errors.append(f"{action_type.value} requires at least one tag")
    elif action_type == ActionType.UPDATE_CONTACT:
        updates = config.get("updates")
        if not isinstance(updates, dict) or not updates:
            errors.append("update_contact requires a non-empty updates object")
    return errors


def parse_action(data: dict, index: int = 0) -> Action:
    """Build a typed action from its stored JSON form.

    Raises:
        ValidationError: unknown type or invalid configuration.
    """
    if not isinstance(data, dict):
        raise ValidationError(f"Action {index} must be an object")
    try:
        action_type = ActionType(data.get("type"))
    except ValueError:
        raise ValidationError(f"Unknown action type: {data.get('type')!r}")

    config = data.get("config") or {}
    errors = validate_action_config(action_type, config, data.get("delay", 0))
    if errors:
        raise ValidationError(f"Invalid {action_type.value} action: {'; '.join(errors)}")

    action_id = str(data.get("id") or f"action_{index}")
    delay = to_float(data.get("delay") or 0) or 0.0

    if action_type == ActionType.SEND_EMAIL:
        return SendEmailAction(
            id=action_id,
            delay=delay,
            subject=config["subject"],
            body=_first(config, "body", "html_content", "htmlContent") or "",
            text_body=_first(config, "text_body", "textContent"),
            template_ref=_first(config, "template_ref", "templateRef"),
            from_email=_first(config, "from_email", "fromEmail"),
            from_name=_first(config, "from_name", "fromName"),
        )
    if action_type == ActionType.SEND_SMS:
        return SendSmsAction(
            id=action_id,
            delay=delay,
            message=config["message"],
            from_number=_first(config, "from_number", "fromNumber"),
        )
    if action_type == ActionType.DELAY:
        duration = _first(config, "duration_minutes", "durationMinutes", "minutes")
        if duration is None:
            # Legacy form: the action's own delay is its duration.
            return DelayAction(id=action_id, delay=0.0, duration_minutes=delay)
        return DelayAction(id=action_id, delay=delay, duration_minutes=to_float(duration) or 0.0)
    if action_type == ActionType.ADD_TAG:
        return AddTagAction(id=action_id, delay=delay, tags=tuple(_tags(config)))
    if action_type == ActionType.REMOVE_TAG:
        return RemoveTagAction(id=action_id, delay=delay, tags=tuple(_tags(config)))
    if action_type == ActionType.UPDATE_CONTACT:
        return UpdateContactAction(id=action_id, delay=delay, updates=dict(config["updates"]))
    raise ValidationError(f"Unsupported action type: {action_type.value}")


# ─── Definitions ───

@dataclass(frozen=True)
class FilterPredicate:
    field: str
    operator: str
    value: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "FilterPredicate":
        if not isinstance(data, dict) or not data.get("field") or not data.get("operator"):
            raise ValidationError("Filter predicates need field, operator and value")
        if "value" not in data:
            raise ValidationError(f"Filter on {data['field']!r} has no value")
        return cls(field=data["field"], operator=data["operator"], value=data.get("value"))

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "operator": self.operator, "value": self.value}


@dataclass(frozen=True)
class TriggerConfig:
    filters: tuple[FilterPredicate, ...] = ()
    exit_conditions: tuple[dict, ...] = ()
    send_to_subscribed_only: bool = True
    respect_quiet_hours: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "TriggerConfig":
        data = data or {}
        raw_filters = data.get("filters")
        if raw_filters is None:
            raw_filters = data.get("conditions") or []
        exit_condition = data.get("exit_condition") or data.get("exit_conditions") or []
        if isinstance(exit_condition, dict):
            exit_condition = [exit_condition]
        return cls(
            filters=tuple(FilterPredicate.from_dict(f) for f in raw_filters),
            exit_conditions=tuple(exit_condition),
            send_to_subscribed_only=bool(data.get("send_to_subscribed_only", True)),
            respect_quiet_hours=bool(data.get("respect_quiet_hours", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "filters": [f.to_dict() for f in self.filters],
            "exit_condition": list(self.exit_conditions),
            "send_to_subscribed_only": self.send_to_subscribed_only,
            "respect_quiet_hours": self.respect_quiet_hours,
        }


@dataclass(frozen=True)
class WorkflowDefinition:
    """Parsed, immutable view of a workflow row."""

    id: str
    store_id: str
    name: str
    trigger_type: TriggerType
    trigger_config: TriggerConfig
    actions: tuple[Action, ...]
    is_active: bool = True

    @property
    def channels(self) -> set[Channel]:
        """Messaging channels the workflow sends on."""
        return {MESSAGING_ACTIONS[a.type] for a in self.actions if a.type in MESSAGING_ACTIONS}

    @classmethod
    def from_model(cls, workflow) -> "WorkflowDefinition":
        return cls.from_dict(
            {
                "id": workflow.id,
                "store_id": workflow.store_id,
                "name": workflow.name,
                "trigger_type": workflow.trigger_type,
                "trigger_config": workflow.trigger_config,
                "actions": workflow.actions,
                "is_active": workflow.is_active,
            }
        )

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowDefinition":
        try:
            trigger_type = TriggerType(data["trigger_type"])
        except (KeyError, ValueError):
            raise ValidationError(f"Unknown trigger type: {data.get('trigger_type')!r}")
        return cls(
            id=data["id"],
            store_id=data["store_id"],
            name=data.get("name") or "",
            trigger_type=trigger_type,
            trigger_config=TriggerConfig.from_dict(data.get("trigger_config")),
            actions=tuple(parse_action(a, i) for i, a in enumerate(data.get("actions") or [])),
            is_active=bool(data.get("is_active", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "trigger_type": self.trigger_type.value,
            "trigger_config": self.trigger_config.to_dict(),
            "actions": [a.to_dict() for a in self.actions],
            "is_active": self.is_active,
        }
