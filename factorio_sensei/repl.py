"""Interactive terminal session with the coach."""

import logging

from factorio_sensei.errors import SenseiError

logger = logging.getLogger(__name__)

STATUS_PROMPT = (
    "Give me a quick status overview: check my position, power grid, current research, "
    "and production of iron-plate and copper-plate."
)

HELP_TEXT = """
Factorio Sensei - AI coaching copilot

Commands:
  /help    Show this help message
  /status  Quick game state overview
  /clear   Clear conversation history
  /quit    Exit (or Ctrl+D)

Ask anything about your factory and Sensei will check your game state.
"""


class Repl:
    """Read-eval-print loop owning a single conversation history."""

    def __init__(self, coach, input_fn=input, output=print):
        self.coach = coach
        self.input_fn = input_fn
        self.output = output
        self.history: list[dict] = []

    def ask(self, text: str):
        self.output("Thinking...")
        try:
            reply = self.coach.prompt(text, self.history)
        except SenseiError as e:
            logger.debug("prompt failed", exc_info=True)
            self.output(f"\n[Error] {e}\n")
            return
        self.output(f"\nSensei>\n{reply}\n")

    def handle(self, line: str) -> bool:
        """Process one input line. Returns False when the session should end."""
        line = line.strip()
        if not line:
            return True
        if line == "/quit":
            return False
        if line == "/help":
            self.output(HELP_TEXT)
        elif line == "/clear":
            self.history.clear()
            self.output("Conversation history cleared.")
        elif line == "/status":
            self.ask(STATUS_PROMPT)
        else:
            self.ask(line)
        return True

    def run(self):
        while True:
            try:
                line = self.input_fn("You> ")
            except (EOFError, KeyboardInterrupt):
                self.output("")
                break
            if not self.handle(line):
                break
