"""
sheetqa - spreadsheet-grounded question answering bot.

Answers chat questions by combining a spreadsheet (reference data) with a
Gemini model and streams progressively refined answers back to Discord.
"""

__version__ = "1.0.0"
