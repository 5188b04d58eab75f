"""Email and SMS executors.

Both re-check the contact's consent at send time: consent can change
while an execution sits in a delay, so the match-time check is not enough.
"""

from typing import Any, Dict

from channels.base import OutboundMessage
from channels.guard import GuardedChannel
from core.constants import ActionType, Channel
from core.exceptions import ConsentRevokedError, ValidationError
from executors.base import ActionContext, BaseActionExecutor
from workflow.actions import SendEmailAction, SendSmsAction
from workflow.templating import render_template


def _require_consent(ctx: ActionContext, channel: Channel) -> None:
    contact = ctx.contact
    if contact is None:
        raise ValidationError(f"{channel.value} action needs a contact")
    if not contact.has_consent(channel.value):
        raise ConsentRevokedError(channel.value, contact.id)


def _metadata(ctx: ActionContext, action_id: str) -> Dict[str, Any]:
    return {
        "execution_id": ctx.execution_id,
        "workflow_id": ctx.workflow_id,
        "action_id": action_id,
    }


class SendEmailExecutor(BaseActionExecutor):
    action_type = ActionType.SEND_EMAIL

    def __init__(self, channel: GuardedChannel):
        self.channel = channel

    async def execute(self, action: SendEmailAction, ctx: ActionContext) -> Dict[str, Any]:
        _require_consent(ctx, Channel.EMAIL)
        contact = ctx.contact
        message = OutboundMessage(
            recipient=contact.email,
            subject=render_template(action.subject, contact, ctx.trigger_data),
            body=render_template(action.body, contact, ctx.trigger_data),
            text_body=render_template(action.text_body, contact, ctx.trigger_data) or None,
            from_address=action.from_email,
            from_name=action.from_name,
            metadata={**_metadata(ctx, action.id), "template_ref": action.template_ref},
        )
        delivery = await self.channel.send(message)
        return {"external_id": delivery.external_id, "recipient": delivery.recipient}


class SendSmsExecutor(BaseActionExecutor):
    action_type = ActionType.SEND_SMS

    def __init__(self, channel: GuardedChannel):
        self.channel = channel

    async def execute(self, action: SendSmsAction, ctx: ActionContext) -> Dict[str, Any]:
        _require_consent(ctx, Channel.SMS)
        contact = ctx.contact
        if not contact.phone:
            raise ValidationError(f"Contact {contact.id} has no phone number")
        message = OutboundMessage(
            recipient=contact.phone,
            body=render_template(action.message, contact, ctx.trigger_data),
            from_address=action.from_number,
            metadata=_metadata(ctx, action.id),
        )
        delivery = await self.channel.send(message)
        return {"external_id": delivery.external_id, "recipient": delivery.recipient}
