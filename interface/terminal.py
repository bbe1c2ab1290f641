"""
Terminal front end: a line protocol for playing a timed puzzle session.

The player types commands on stdin and the handler answers on stdout, one
response per line, in the spirit of an engine protocol loop. The session
clock is advanced before every command, so the terminal plays the role of
the UI loop that would otherwise call tick() on a timer.

Commands:
    next            serve the next puzzle
    board           print the board with the moves played so far
    move <uci>      submit the next move of the solution
    tick            show the remaining time
    score           show score, streak, and puzzles solved
    mode <tier>     switch tier (tutorial, core-loop, spice, boss)
    new | reset     start over with a full clock
    quit            exit

Critical rule: stdout carries protocol responses only. Diagnostics go to
stderr through logging.
"""

import asyncio
import logging
import sys
from typing import TextIO

import chess

from puzzles.config import PuzzleConfig
from puzzles.manager import PuzzleManager
from puzzles.models import PuzzleView
from puzzles.session import PuzzleSession

_log = logging.getLogger(__name__)


def _send(line: str) -> None:
    """Write one response line to stdout and flush immediately."""
    print(line, flush=True)


class TerminalHandler:
    """
    Stateful handler for the terminal protocol.

    Attributes:
        session:    The player's session.
        puzzle:     View of the puzzle being solved, or None.
        board:      Board after the moves played so far, or None when the
                    puzzle's FEN could not be parsed.
        move_index: Index of the next expected move in the solution line.
    """

    def __init__(self, session: PuzzleSession) -> None:
        self.session = session
        self.puzzle: PuzzleView | None = None
        self.board: chess.Board | None = None
        self.move_index = 0

    # -----------------------------------------------------------------------
    # Command handlers
    # -----------------------------------------------------------------------

    async def handle_next(self) -> None:
        if self.session.is_game_over():
            self._send_game_over()
            return

        view = await self.session.next_puzzle()
        if view is None:
            _send("error puzzle unavailable")
            return

        self.puzzle = view
        self.move_index = 0
        try:
            self.board = chess.Board(view.fen)
        except ValueError:
            _log.warning("terminal: unparseable FEN in puzzle: %s", view.fen)
            self.board = None

        _send(f"puzzle {view.tier} rating {view.rating}")
        _send(f"fen {view.fen}")
        _send(f"goal {view.goal_text}")

    def handle_board(self) -> None:
        if self.board is None:
            _send("error no board")
            return
        for row in self.board.unicode(empty_square=".").splitlines():
            _send(row)

    def handle_move(self, tokens: list[str]) -> None:
        if not tokens:
            _send("error usage: move <uci>")
            return
        if self.puzzle is None:
            _send("error no puzzle")
            return

        uci_move = tokens[0]
        result = self.session.submit_move(uci_move, self.move_index)

        if not result.correct:
            if self.session.is_game_over():
                self._send_game_over()
            else:
                _send(f"incorrect streak {self.session.current_streak}")
            return

        self._play_on_board(uci_move)
        self.move_index += 1

        if result.complete:
            self.puzzle = None
            _send(
                f"solved score {result.score} time {result.time_to_solve:.1f} "
                f"streak {result.streak} total {result.total_score}"
            )
        else:
            _send("correct")

    def handle_tick(self) -> None:
        if self.session.is_game_over():
            self._send_game_over()
        else:
            _send(f"time {self.session.remaining_time:.1f}")

    def handle_score(self) -> None:
        final = self.session.get_final_score()
        _send(f"score {final.score} streak {final.streak} solved {final.puzzles_solved}")

    def handle_mode(self, tokens: list[str]) -> None:
        if not tokens or not self.session.set_mode(tokens[0]):
            _send("error unknown tier")
            return
        _send(f"mode {tokens[0]}")

    def handle_reset(self) -> None:
        self.session.reset()
        self.puzzle = None
        self.board = None
        self.move_index = 0
        _send(f"ok time {self.session.remaining_time:.1f}")

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _play_on_board(self, uci_move: str) -> None:
        if self.board is None:
            return
        try:
            move = chess.Move.from_uci(uci_move)
        except ValueError:
            return
        if move in self.board.legal_moves:
            self.board.push(move)
        else:
            _log.warning("terminal: solution move %s is illegal on the board", uci_move)

    def _send_game_over(self) -> None:
        final = self.session.get_final_score()
        _send(f"gameover score {final.score} streak {final.streak}")

    async def dispatch(self, line: str) -> bool:
        """
        Run one command line.

        Returns:
            False when the loop should stop ("quit"), True otherwise.
        """
        tokens = line.split()
        if not tokens:
            return True
        command, args = tokens[0], tokens[1:]

        if command in ("new", "reset"):
            self.handle_reset()
            return True
        if command == "quit":
            return False

        self.session.tick()

        if command == "next":
            await self.handle_next()
        elif command == "board":
            self.handle_board()
        elif command == "move":
            self.handle_move(args)
        elif command == "tick":
            self.handle_tick()
        elif command == "score":
            self.handle_score()
        elif command == "mode":
            self.handle_mode(args)
        else:
            _log.info("terminal: ignoring unknown command: %r", command)
            _send(f"error unknown command {command}")
        return True


async def run_terminal_loop(manager: PuzzleManager, stream: TextIO = sys.stdin) -> int:
    """
    Main protocol loop.

    Initializes the manager, then reads commands until "quit" or EOF.
    A bug in one command handler is logged and the loop continues.

    Returns:
        Process exit code.
    """
    if not await manager.init():
        _send("error puzzle system unavailable")
        return 1

    handler = TerminalHandler(manager.new_session())
    handler.session.start_puzzle_timer()
    _send(f"ready time {handler.session.remaining_time:.1f}")

    while True:
        raw_line = await asyncio.to_thread(stream.readline)
        if not raw_line:
            break
        try:
            if not await handler.dispatch(raw_line.strip()):
                break
        except Exception:
            _log.exception("terminal: unhandled error for %r", raw_line.strip())

    handler.handle_score()
    return 0


async def _main() -> int:
    async with PuzzleManager(PuzzleConfig.from_env()) as manager:
        return await run_terminal_loop(manager)


def main() -> None:
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr)
    sys.exit(asyncio.run(_main()))


if __name__ == "__main__":
    main()
