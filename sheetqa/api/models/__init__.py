from sheetqa.api.models.interactions import CommandData, CommandOption, Interaction, InteractionResponse

__all__ = ["CommandData", "CommandOption", "Interaction", "InteractionResponse"]
