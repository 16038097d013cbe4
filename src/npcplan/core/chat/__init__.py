"""Free-form chat on top of the model runtime."""

from npcplan.core.chat.calculator import DEFAULT_SYSTEM_PROMPT, CalculatorChat

__all__ = ["CalculatorChat", "DEFAULT_SYSTEM_PROMPT"]
