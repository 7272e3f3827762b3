"""Claude coaching agent: Anthropic Messages API with the read-only game-state tools."""

import json
import logging

import anthropic

from factorio_sensei.errors import AssistantError, DecodeError, NoPlayerError, SenseiError
from factorio_sensei.telemetry import Telemetry, emit_error, emit_tool_call, emit_tool_result
from factorio_sensei.tools import QueryTool, build_tools

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
MAX_TOOL_ROUNDS = 10
MAX_TOKENS = 1024

SYSTEM_PROMPT = """\
You are Factorio Sensei, an expert Factorio 2.x coach. You observe the player's game via tools \
and teach them to play optimally.

Rules:
1. ALWAYS call tools to check actual game state before giving advice. Never guess.
2. Reference specific numbers from tool results (e.g. "You're producing 15 iron/min but consuming 22").
3. Explain WHY something is a problem, not just WHAT to build.
4. When analyzing production, compare against known optimal ratios.
5. Keep responses concise. The player is in-game, not reading essays. 2-4 paragraphs max.
6. You are read-only: you observe and advise, never execute game actions.
7. If the player asks about recipes or crafting, use get_recipe to look up exact ingredients.
8. For factory analysis, check: power satisfaction, production bottlenecks, research progress, \
nearby resources.
9. When responding to in-game messages (prefixed with [In-game message from player]), keep \
responses extra brief, 1-2 sentences max. The player cannot read long text in game chat.
10. Reference your knowledge base context for exact ratios, formulas, and game mechanics. \
Prefer these verified numbers over guessing.

Available tools let you read: player position, inventory, production stats, power grid, research, \
nearby entities/resources, assemblers, furnaces, and recipe prototypes.
"""


def build_system_prompt(articles=()) -> str:
    parts = [SYSTEM_PROMPT]
    for i, article in enumerate(articles, start=1):
        parts.append(f"<knowledge index=\"{i}\">\n{article.strip()}\n</knowledge>")
    return "\n\n".join(parts)


class Coach:
    """Runs one prompt at a time through Claude, executing tool calls in-process.

    History is a list of {"role", "content"} turns owned by the caller (one
    per bridge player, one for the REPL). Only the user prompt and the final
    text reply are recorded; intermediate tool rounds stay local to a turn.
    """

    def __init__(self, client, tools: list[QueryTool], model: str = DEFAULT_MODEL,
                 articles=(), max_tool_rounds: int = MAX_TOOL_ROUNDS,
                 max_tokens: int = MAX_TOKENS, telemetry: Telemetry | None = None):
        self.client = client
        self.tools = {tool.name: tool for tool in tools}
        self.model = model
        self.system_prompt = build_system_prompt(articles)
        self.max_tool_rounds = max_tool_rounds
        self.max_tokens = max_tokens
        self.telemetry = telemetry

    def tool_definitions(self) -> list[dict]:
        return [tool.definition() for tool in self.tools.values()]

    def run_tool(self, name: str, tool_input: dict) -> tuple[str, bool]:
        """Execute one tool call. Returns (content, is_error) for the tool_result block."""
        tool = self.tools.get(name)
        if tool is None:
            return f"Unknown tool: {name}", True
        try:
            return tool.call(tool_input).to_json(), False
        except NoPlayerError as e:
            return str(e), True
        except DecodeError as e:
            logger.error("tool %s returned an undecodable response: %s", name, e)
            return f"Error: {e}", True
        except (SenseiError, ValueError) as e:
            return f"Error: {e}", True

    def prompt(self, text: str, history: list[dict]) -> str:
        """Send text with prior history; on success append both turns to history."""
        conversation = list(history) + [{"role": "user", "content": text}]
        tools = self.tool_definitions()

        for _ in range(self.max_tool_rounds):
            try:
                response = self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=self.system_prompt,
                    messages=conversation,
                    tools=tools,
                )
            except anthropic.APIError as e:
                emit_error(self.telemetry, f"API error: {e}")
                raise AssistantError(f"API error: {e}") from e

            text_parts = []
            tool_uses = []
            for block in response.content:
                if block.type == "text":
                    text_parts.append(block.text)
                elif block.type == "tool_use":
                    tool_uses.append(block)

            if response.stop_reason != "tool_use" or not tool_uses:
                reply = "\n".join(text_parts) if text_parts else "(no response)"
                break

            conversation.append({"role": "assistant", "content": response.content})
            tool_results = []
            for tu in tool_uses:
                logger.info("tool %s(%s)", tu.name, json.dumps(tu.input, separators=(",", ":")))
                emit_tool_call(self.telemetry, tu.name, tu.input)
                content, is_error = self.run_tool(tu.name, tu.input)
                emit_tool_result(self.telemetry, tu.name, content)
                result = {"type": "tool_result", "tool_use_id": tu.id, "content": content}
                if is_error:
                    result["is_error"] = True
                tool_results.append(result)
            conversation.append({"role": "user", "content": tool_results})
        else:
            reply = "(max tool rounds reached)"

        history.append({"role": "user", "content": text})
        history.append({"role": "assistant", "content": reply})
        return reply


def build_coach(rcon, model: str | None = None, articles=(),
                telemetry: Telemetry | None = None) -> Coach:
    """Coach backed by the real Anthropic client; reads ANTHROPIC_API_KEY from the environment."""
    return Coach(
        anthropic.Anthropic(),
        build_tools(rcon),
        model=model or DEFAULT_MODEL,
        articles=articles,
        telemetry=telemetry,
    )
