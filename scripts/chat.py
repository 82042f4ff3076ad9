#!/usr/bin/env python3
"""
Terminal chat client for the RAG relay server.

Usage examples:
  python chat.py --url http://localhost:5000
  python chat.py "What is Elasticsearch?"

With a question argument the script answers it and exits; otherwise it reads
questions from stdin until EOF or an empty line. Answers are printed as they
stream in.
"""
import argparse
import sys
from pathlib import Path

# Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rag_relay.client.consumer import Conversation, StreamConsumer
from rag_relay.core.config import settings
from rag_relay.core.logging import get_logger

logger = get_logger(__name__)


class TerminalRenderer:
    """Prints the growing tail of the last answer."""

    def __init__(self, out=sys.stdout):
        self.out = out
        self._turn_index = -1
        self._printed = 0

    def __call__(self, conversation: Conversation):
        if not conversation.turns:
            return
        index = len(conversation.turns) - 1
        turn = conversation.turns[index]
        if index != self._turn_index:
            self._turn_index = index
            self._printed = 0
            self.out.write("bot> ")

        self.out.write(turn.answer_markdown[self._printed:])
        self._printed = len(turn.answer_markdown)
        if turn.is_complete:
            self.out.write("\n")
        self.out.flush()


def main() -> int:
    parser = argparse.ArgumentParser(description="Chat with the RAG relay server")
    parser.add_argument("question", nargs="?", help="Ask a single question and exit")
    parser.add_argument(
        "--url", "-u",
        default=f"http://localhost:{settings.PORT}",
        help="Server base URL"
    )
    args = parser.parse_args()

    consumer = StreamConsumer(base_url=args.url, on_render=TerminalRenderer())

    try:
        if args.question:
            turn = consumer.ask(args.question)
            return 1 if turn is None or turn.failed else 0

        while True:
            try:
                question = input("you> ")
            except EOFError:
                return 0
            if not question.strip():
                return 0
            consumer.ask(question)

    except KeyboardInterrupt:
        return 130
    finally:
        consumer.close()


if __name__ == "__main__":
    raise SystemExit(main())
