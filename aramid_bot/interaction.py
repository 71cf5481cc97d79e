"""
Reply-state tracking for Discord interactions.

Discord allows exactly one initial response per interaction (a reply, a
deferral or a modal). InteractionReply records which one happened and picks
the matching API call for every later message.
"""
import logging
from enum import Enum
from typing import Dict, Optional

import discord

from .screens import ModalForm, Screen
from .views import ScreenView, build_modal, screen_to_embed

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Sorry, something went wrong while processing your request. Please try again."


class ReplyState(Enum):
    UNANSWERED = "unanswered"
    DEFERRED = "deferred"
    REPLIED = "replied"


class InteractionStateError(RuntimeError):
    """An operation is not allowed in the interaction's current reply state."""


class InteractionReply:
    def __init__(self, interaction: discord.Interaction, ephemeral: bool = True):
        self.interaction = interaction
        self.ephemeral = ephemeral
        self.state = ReplyState.UNANSWERED

    @property
    def user_id(self) -> str:
        return str(self.interaction.user.id)

    @property
    def username(self) -> str:
        return self.interaction.user.name

    @property
    def custom_id(self) -> str:
        return (self.interaction.data or {}).get("custom_id", "")

    def modal_values(self) -> Dict[str, str]:
        """Text input values of a modal submission keyed by input custom id."""
        values = {}
        for row in (self.interaction.data or {}).get("components", []):
            for component in row.get("components", []):
                values[component["custom_id"]] = component.get("value", "")
        return values

    @property
    def _is_component(self) -> bool:
        """Component clicks, and modals opened from one, update the message they came from."""
        if self.interaction.type == discord.InteractionType.component:
            return True
        return self.interaction.type == discord.InteractionType.modal_submit and self.interaction.message is not None

    async def defer(self) -> None:
        """Acknowledge now, answer later. No-op once answered."""
        if self.state != ReplyState.UNANSWERED:
            return
        if self._is_component:
            await self.interaction.response.defer()
        else:
            await self.interaction.response.defer(ephemeral=self.ephemeral, thinking=True)
        self.state = ReplyState.DEFERRED

    async def show_modal(self, form: ModalForm) -> None:
        if self.state != ReplyState.UNANSWERED:
            raise InteractionStateError(f"Cannot open modal {form.custom_id}: interaction already {self.state.value}")
        await self.interaction.response.send_modal(build_modal(form))
        self.state = ReplyState.REPLIED

    async def show(self, screen: Screen) -> None:
        """Render a screen, editing the originating message where possible."""
        await self._send(embed=screen_to_embed(screen), view=ScreenView(screen))

    async def message(self, content: str) -> None:
        await self._send(content=content, view=None, embed=None)

    async def _send(self, content: Optional[str] = None, embed=None, view=None) -> None:
        fresh = {k: v for k, v in {"content": content, "embed": embed, "view": view}.items() if v is not None}
        if self.state == ReplyState.UNANSWERED:
            if self._is_component:
                await self.interaction.response.edit_message(content=content, embed=embed, view=view)
            else:
                await self.interaction.response.send_message(ephemeral=self.ephemeral, **fresh)
        elif self.state == ReplyState.DEFERRED:
            await self.interaction.edit_original_response(content=content, embed=embed, view=view)
        else:
            await self.interaction.followup.send(ephemeral=self.ephemeral, **fresh)
        self.state = ReplyState.REPLIED

    async def fail(self, message: str = GENERIC_ERROR) -> None:
        """Last-resort error reply. Never raises."""
        try:
            if self.state == ReplyState.REPLIED:
                await self.interaction.followup.send(message, ephemeral=True)
            elif self.state == ReplyState.DEFERRED:
                await self.interaction.edit_original_response(content=message, embed=None, view=None)
            else:
                await self.interaction.response.send_message(message, ephemeral=True)
            self.state = ReplyState.REPLIED
        except discord.HTTPException as e:
            logger.error(f"Could not send error reply for {self.custom_id or 'command'}: {e}")
