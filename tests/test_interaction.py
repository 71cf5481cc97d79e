"""
Tests for interaction reply-state handling.

Discord accepts one initial response per interaction; these tests pin down
which API call is used in each state.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

import discord

from aramid_bot.interaction import InteractionReply, InteractionStateError, ReplyState
from aramid_bot.screens import Button, ModalForm, ModalInput, Screen


def make_interaction(kind=discord.InteractionType.component, data=None, message=True):
    interaction = MagicMock()
    interaction.type = kind
    interaction.data = data if data is not None else {"custom_id": "menu:main"}
    interaction.message = MagicMock() if message else None
    interaction.user.id = 123456789012345678
    interaction.user.name = "trader"
    interaction.response.defer = AsyncMock()
    interaction.response.edit_message = AsyncMock()
    interaction.response.send_message = AsyncMock()
    interaction.response.send_modal = AsyncMock()
    interaction.edit_original_response = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


def make_screen():
    return Screen(title="Test", description="Hello", rows=[[Button("menu:main", "Back")]])


class TestIdentity:
    def test_user_fields(self):
        reply = InteractionReply(make_interaction())
        assert reply.user_id == "123456789012345678"
        assert reply.username == "trader"
        assert reply.custom_id == "menu:main"

    def test_modal_values(self):
        data = {
            "custom_id": "settings:modal",
            "components": [
                {"type": 1, "components": [{"type": 4, "custom_id": "min_quick_buy", "value": "0.2"}]},
                {"type": 1, "components": [{"type": 4, "custom_id": "medium_quick_buy", "value": ""}]},
            ],
        }
        reply = InteractionReply(make_interaction(discord.InteractionType.modal_submit, data))
        assert reply.modal_values() == {"min_quick_buy": "0.2", "medium_quick_buy": ""}


class TestReplyState:
    """Test the call used for each reply state."""

    @pytest.mark.asyncio
    async def test_component_show_edits_message(self):
        interaction = make_interaction()
        reply = InteractionReply(interaction)

        await reply.show(make_screen())

        interaction.response.edit_message.assert_called_once()
        kwargs = interaction.response.edit_message.call_args.kwargs
        assert kwargs["embed"].title == "Test"
        assert reply.state == ReplyState.REPLIED

    @pytest.mark.asyncio
    async def test_command_show_sends_ephemeral(self):
        interaction = make_interaction(discord.InteractionType.application_command, data={}, message=False)
        reply = InteractionReply(interaction)

        await reply.show(make_screen())

        interaction.response.send_message.assert_called_once()
        assert interaction.response.send_message.call_args.kwargs["ephemeral"] is True

    @pytest.mark.asyncio
    async def test_modal_submit_without_message_sends(self):
        interaction = make_interaction(discord.InteractionType.modal_submit, message=False)
        reply = InteractionReply(interaction)

        await reply.message("Saved")

        interaction.response.send_message.assert_called_once_with(ephemeral=True, content="Saved")

    @pytest.mark.asyncio
    async def test_deferred_show_edits_original(self):
        interaction = make_interaction()
        reply = InteractionReply(interaction)

        await reply.defer()
        await reply.show(make_screen())

        interaction.response.defer.assert_called_once_with()
        interaction.edit_original_response.assert_called_once()
        interaction.response.edit_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_defer_twice_is_noop(self):
        interaction = make_interaction()
        reply = InteractionReply(interaction)
        await reply.defer()
        await reply.defer()
        interaction.response.defer.assert_called_once()

    @pytest.mark.asyncio
    async def test_second_show_uses_followup(self):
        interaction = make_interaction()
        reply = InteractionReply(interaction)

        await reply.show(make_screen())
        await reply.show(make_screen())

        interaction.followup.send.assert_called_once()

    @pytest.mark.asyncio
    async def test_modal_must_be_initial_response(self):
        interaction = make_interaction()
        reply = InteractionReply(interaction)
        form = ModalForm("sol_buy:token_modal", "Select Token", [ModalInput("token_address", "Token")])

        await reply.defer()
        with pytest.raises(InteractionStateError):
            await reply.show_modal(form)
        interaction.response.send_modal.assert_not_called()

    @pytest.mark.asyncio
    async def test_show_modal(self):
        interaction = make_interaction()
        reply = InteractionReply(interaction)
        form = ModalForm("sol_buy:token_modal", "Select Token", [ModalInput("token_address", "Token")])

        await reply.show_modal(form)

        modal = interaction.response.send_modal.call_args.args[0]
        assert modal.custom_id == "sol_buy:token_modal"
        assert reply.state == ReplyState.REPLIED


class TestFail:
    @pytest.mark.asyncio
    async def test_fail_unanswered(self):
        interaction = make_interaction()
        reply = InteractionReply(interaction)
        await reply.fail("Oops")
        interaction.response.send_message.assert_called_once_with("Oops", ephemeral=True)

    @pytest.mark.asyncio
    async def test_fail_after_defer(self):
        interaction = make_interaction()
        reply = InteractionReply(interaction)
        await reply.defer()
        await reply.fail("Oops")
        interaction.edit_original_response.assert_called_once_with(content="Oops", embed=None, view=None)

    @pytest.mark.asyncio
    async def test_fail_after_reply_uses_followup(self):
        interaction = make_interaction()
        reply = InteractionReply(interaction)
        await reply.show(make_screen())
        await reply.fail("Oops")
        interaction.followup.send.assert_called_once_with("Oops", ephemeral=True)

    @pytest.mark.asyncio
    async def test_fail_swallows_http_errors(self):
        interaction = make_interaction()
        interaction.response.send_message = AsyncMock(
            side_effect=discord.HTTPException(MagicMock(status=404, reason="Not Found"), "Unknown interaction")
        )
        reply = InteractionReply(interaction)
        await reply.fail()
