"""
Command line entry point.

Usage:
    npcplan plan --width 5 --height 5 --npc 0,0 --ping 2,2 --behavior scout --radius 1
    npcplan grammar --width 5 --height 5 [--schema action] [--json-schema]
    npcplan chat [--sessions 2]
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from npcplan.core import config
from npcplan.core.chat import CalculatorChat
from npcplan.core.debug_logger import DebugLogger
from npcplan.core.llm import LLMRuntimeError, ModelRuntime, RuntimeConfig
from npcplan.core.planner import (
    DecisionRequest,
    DecisionSchema,
    GridPoint,
    NpcBehavior,
    NpcPlanner,
    build_gbnf,
    build_json_schema,
    load_profile,
    normalize,
    render_grid,
)

logger = logging.getLogger(__name__)


def parse_point(value: str) -> GridPoint:
    try:
        x, y = (int(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y but got {value!r}")
    return GridPoint(x, y)


def _add_runtime_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--dialect", choices=["llama_cpp", "ollama", "mock"], default=config.LLM_DIALECT)
    parser.add_argument("--model", default=config.MODEL_PATH, help="GGUF path or Ollama model tag")
    parser.add_argument("--base-url", default=None, help="Ollama server URL")
    parser.add_argument("--context-size", type=int, default=config.CONTEXT_SIZE)
    parser.add_argument("--gpu-layers", type=int, default=config.GPU_LAYERS)
    parser.add_argument("--seed", type=int, default=config.SEED)


def _runtime_from_args(args: argparse.Namespace) -> ModelRuntime:
    runtime_config = RuntimeConfig(
        dialect=args.dialect,
        model_path=args.model,
        context_size=args.context_size,
        gpu_layers=args.gpu_layers,
        seed=args.seed,
        base_url=args.base_url or (config.OLLAMA_BASE_URL if args.dialect == "ollama" else None),
        native_search_paths=list(config.NATIVE_SEARCH_PATHS),
    )
    return ModelRuntime(runtime_config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="npcplan", description="Local LLM NPC planner and chat.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Decide one NPC move")
    _add_runtime_args(plan)
    plan.add_argument("--width", type=int, required=True)
    plan.add_argument("--height", type=int, required=True)
    plan.add_argument("--npc", type=parse_point, required=True, help="X,Y")
    plan.add_argument("--ping", type=parse_point, required=True, help="X,Y")
    plan.add_argument("--behavior", choices=[b.value for b in NpcBehavior], default=NpcBehavior.SCOUT.value)
    plan.add_argument("--radius", type=int, default=1)
    plan.add_argument("--profile", default="coordinates", help="Built-in profile name or profile file")
    plan.add_argument("--no-trim", action="store_true", help="Do not trim the completion to its first JSON object")
    plan.add_argument("--trace", action="store_true", default=config.TRACE_ENABLED, help="Write a debug trace file")

    grammar = sub.add_parser("grammar", help="Print the decision grammar")
    grammar.add_argument("--width", type=int, required=True)
    grammar.add_argument("--height", type=int, required=True)
    grammar.add_argument("--schema", choices=[s.value for s in DecisionSchema], default=DecisionSchema.COORDINATES.value)
    grammar.add_argument("--json-schema", action="store_true", help="Print the JSON schema instead of GBNF")

    chat = sub.add_parser("chat", help="Interactive calculator chat")
    _add_runtime_args(chat)
    chat.add_argument("--sessions", type=int, default=config.RUNTIME_SESSION_COUNT)
    chat.add_argument("--system-prompt", default=None)

    return parser


async def run_plan(args: argparse.Namespace) -> int:
    profile = load_profile(args.profile)
    planner = NpcPlanner(
        profile,
        trim_to_first_json=not args.no_trim,
        trace_logger=DebugLogger() if args.trace else None,
    )
    request = DecisionRequest(
        npc=args.npc,
        ping=args.ping,
        behavior=NpcBehavior(args.behavior),
        grid_width=args.width,
        grid_height=args.height,
        near_radius=args.radius,
    )
    async with _runtime_from_args(args) as runtime:
        await runtime.initialize(1)
        trace = await planner.plan(runtime, request)

    normalized = normalize(request)
    print(json.dumps(trace.to_dict(), indent=2))
    print(render_grid(normalized.grid_width, normalized.grid_height, trace.decision.target, normalized.ping))
    return 0


def run_grammar(args: argparse.Namespace) -> int:
    request = normalize(DecisionRequest(
        npc=GridPoint(0, 0),
        ping=GridPoint(0, 0),
        behavior=NpcBehavior.GUARD,
        grid_width=args.width,
        grid_height=args.height,
    ))
    schema = DecisionSchema(args.schema)
    if args.json_schema:
        print(json.dumps(build_json_schema(request, schema), indent=2))
    else:
        print(build_gbnf(request, schema), end="")
    return 0


async def run_chat(args: argparse.Namespace) -> int:
    async with _runtime_from_args(args) as runtime:
        chat = CalculatorChat(runtime) if args.system_prompt is None else CalculatorChat(runtime, args.system_prompt)
        await chat.initialize(args.sessions)
        print("Commands: :session N, :clear, :quit")
        while True:
            try:
                line = await asyncio.to_thread(input, f"[{runtime.active_session_index}] User: ")
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if line == ":quit":
                break
            if line == ":clear":
                await chat.clear()
                continue
            if line.startswith(":session"):
                try:
                    await chat.switch_session(int(line.split()[1]))
                except (IndexError, ValueError) as e:
                    print(f"Invalid session: {e}")
                continue

            sys.stdout.write("Assistant: ")
            async for token in chat.ask(line):
                sys.stdout.write(token)
                sys.stdout.flush()
            sys.stdout.write("\n")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command == "grammar":
            return run_grammar(args)
        if args.command == "plan":
            return asyncio.run(run_plan(args))
        return asyncio.run(run_chat(args))
    except (LLMRuntimeError, FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
