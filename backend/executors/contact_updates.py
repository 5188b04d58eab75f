"""Executors that mutate the contact record: tags and field updates.

Pure data mutations on the step's own session. No retry or circuit
breaker; a failure is logged and recorded like any other action failure.
"""

from typing import Any, Dict

from core.constants import ActionType
from core.exceptions import ValidationError
from executors.base import ActionContext, BaseActionExecutor
from services.contact_service import ContactService
from workflow.actions import AddTagAction, RemoveTagAction, UpdateContactAction


def _contact(ctx: ActionContext, action_type: ActionType):
    if ctx.contact is None:
        raise ValidationError(f"{action_type.value} action needs a contact")
    return ctx.contact


class AddTagExecutor(BaseActionExecutor):
    action_type = ActionType.ADD_TAG

    async def execute(self, action: AddTagAction, ctx: ActionContext) -> Dict[str, Any]:
        contact = _contact(ctx, self.action_type)
        added = await ContactService(ctx.session).add_tags(contact, action.tags)
        return {"added": added, "tags": list(contact.tags)}


class RemoveTagExecutor(BaseActionExecutor):
    action_type = ActionType.REMOVE_TAG

    async def execute(self, action: RemoveTagAction, ctx: ActionContext) -> Dict[str, Any]:
        contact = _contact(ctx, self.action_type)
        removed = await ContactService(ctx.session).remove_tags(contact, action.tags)
        return {"removed": removed, "tags": list(contact.tags)}


class UpdateContactExecutor(BaseActionExecutor):
    action_type = ActionType.UPDATE_CONTACT

    async def execute(self, action: UpdateContactAction, ctx: ActionContext) -> Dict[str, Any]:
        contact = _contact(ctx, self.action_type)
        changed = await ContactService(ctx.session).apply_updates(contact, dict(action.updates))
        return {"changed": changed}
