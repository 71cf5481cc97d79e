"""
Conversion of platform-neutral screens and forms into discord.py objects.

Buttons carry only custom ids; clicks are routed by the bot's handler
registry, not by per-view callbacks.
"""
import discord

from .screens import ModalForm, Screen

BUTTON_STYLES = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}

MAX_FIELD_LENGTH = 1024


def screen_to_embed(screen: Screen) -> discord.Embed:
    embed = discord.Embed(
        title=screen.title,
        description=screen.description or None,
        color=screen.color,
    )
    for field in screen.fields:
        embed.add_field(name=field.name, value=field.value[:MAX_FIELD_LENGTH] or "\u200b", inline=field.inline)
    return embed


class ScreenView(discord.ui.View):
    def __init__(self, screen: Screen, timeout: float = 900):
        super().__init__(timeout=timeout)
        for row_index, row in enumerate(screen.rows[:5]):
            for button in row[:5]:
                self.add_item(discord.ui.Button(
                    custom_id=button.custom_id,
                    label=button.label,
                    style=BUTTON_STYLES.get(button.style, discord.ButtonStyle.secondary),
                    disabled=button.disabled,
                    emoji=button.emoji,
                    row=row_index,
                ))


class FormModal(discord.ui.Modal):
    def __init__(self, form: ModalForm):
        super().__init__(title=form.title[:45], custom_id=form.custom_id)
        for field in form.inputs[:5]:
            self.add_item(discord.ui.TextInput(
                custom_id=field.custom_id,
                label=field.label[:45],
                placeholder=field.placeholder or None,
                default=field.default or None,
                required=field.required,
                style=discord.TextStyle.paragraph if field.paragraph else discord.TextStyle.short,
            ))

    async def on_submit(self, interaction: discord.Interaction) -> None:
        # Submissions are answered by the registry handler for form.custom_id
        return None


def build_modal(form: ModalForm) -> FormModal:
    return FormModal(form)
