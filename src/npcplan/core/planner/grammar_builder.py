"""
Decision grammar builder for constrained decoding.

Produces two equivalent renderings of every string accepted as a decision
object for one request:
- GBNF text for llama.cpp, using explicit literal alternatives only (some
  native backends mis-handle character classes and ranges)
- a JSON schema for engines that constrain with a schema (Ollama ``format``)

Compilation belongs to the engine; see ``ModelRuntime.compile_grammar``.
"""

from dataclasses import dataclass, field

from npcplan.core.planner.types import DecisionRequest, DecisionSchema, NpcAction


@dataclass(frozen=True)
class DecisionGrammar:
    gbnf: str
    json_schema: dict = field(hash=False, compare=False)


def _literal_alternatives(values) -> str:
    return " | ".join(f'"{v}"' for v in values)


def build_gbnf(request: DecisionRequest, schema: DecisionSchema = DecisionSchema.COORDINATES) -> str:
    """Build the GBNF grammar for a normalized request.

    Example output for a 2x3 grid, coordinate schema:
        root ::= "{" "\\"target_x\\"" ":" x "," "\\"target_y\\"" ":" y "}"
        x ::= "0" | "1"
        y ::= "0" | "1" | "2"
    """
    coords = '"\\"target_x\\"" ":" x "," "\\"target_y\\"" ":" y'
    if schema is DecisionSchema.ACTION:
        body = f'"\\"action\\"" ":" action "," {coords}'
    else:
        body = coords

    lines = [
        f'root ::= "{{" {body} "}}"',
        f"x ::= {_literal_alternatives(range(request.grid_width))}",
        f"y ::= {_literal_alternatives(range(request.grid_height))}",
    ]
    if schema is DecisionSchema.ACTION:
        actions = " | ".join(f'"\\"{a.value}\\""' for a in NpcAction)
        lines.append(f"action ::= {actions}")
    return "\n".join(lines) + "\n"


def build_json_schema(request: DecisionRequest, schema: DecisionSchema = DecisionSchema.COORDINATES) -> dict:
    """Build the JSON schema equivalent of ``build_gbnf``."""
    properties = {}
    if schema is DecisionSchema.ACTION:
        properties["action"] = {"type": "string", "enum": [a.value for a in NpcAction]}
    properties["target_x"] = {"type": "integer", "enum": list(range(request.grid_width))}
    properties["target_y"] = {"type": "integer", "enum": list(range(request.grid_height))}

    return {
        "type": "object",
        "properties": properties,
        "required": list(schema.keys),
        "additionalProperties": False,
    }


def build_grammar(request: DecisionRequest, schema: DecisionSchema = DecisionSchema.COORDINATES) -> DecisionGrammar:
    return DecisionGrammar(gbnf=build_gbnf(request, schema), json_schema=build_json_schema(request, schema))
