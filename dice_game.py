import sys
import secrets
import hmac
import hashlib
import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from fractions import Fraction
from typing import Callable, Optional, Union
from tabulate import tabulate

logger = logging.getLogger(__name__)

FACES_PER_DIE = 6
MIN_DICE = 3
KEY_SIZE = 32
SELF_WIN_RATE = 0.3333

# ==============================================================================
# 1. Error Handling Classes
# ==============================================================================

class ConfigurationError(Exception):
    """
    Raised (or returned inside Err) when the dice specifications are unusable.
    Provides a formatted message including an example of correct usage.
    """
    _invocation_command = "python"

    @staticmethod
    def set_invocation_command(command: str):
        """Sets the command used to run the script (e.g., 'python' or 'py')."""
        ConfigurationError._invocation_command = command

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        script_name = sys.argv[0] if sys.argv else 'dice_game.py'
        example = (
            f"{ConfigurationError._invocation_command} {script_name} "
            f"2,2,4,4,9,9 1,1,6,6,8,8 3,3,5,5,7,7"
        )
        return f"\nArgument Error: {self.message}\n\nExample usage:\n{example}\n"


class ProtocolMisuseError(AssertionError):
    """A commitment was disclosed out of order. Always a programming error."""

# ==============================================================================
# 2. Data Structure for a Die
# ==============================================================================

@dataclass(frozen=True)
class Die:
    faces: tuple[int, ...]

    def __post_init__(self):
        faces = tuple(self.faces)
        if len(faces) != FACES_PER_DIE:
            raise ValueError(f"A die must have exactly {FACES_PER_DIE} faces, got {len(faces)}.")
        if not all(isinstance(f, int) and not isinstance(f, bool) for f in faces):
            raise ValueError("All dice faces must be integer values.")
        object.__setattr__(self, "faces", faces)

    def __str__(self) -> str:
        return ",".join(map(str, self.faces))

    def __len__(self) -> int:
        return len(self.faces)

# ==============================================================================
# 3. Dice Set Builder
# ==============================================================================

@dataclass(frozen=True)
class Ok:
    pool: tuple[Die, ...]

    def unwrap(self) -> tuple[Die, ...]:
        return self.pool


@dataclass(frozen=True)
class Err:
    error: ConfigurationError

    def unwrap(self):
        raise self.error


BuildResult = Union[Ok, Err]

_INTEGER_RE = re.compile(r"^[+-]?\d+$")


class DiceSetBuilder:
    @staticmethod
    def build(specs: list[str]) -> BuildResult:
        """Parse every spec into a Die. Either all of them succeed or nothing is returned."""
        if len(specs) < MIN_DICE:
            return Err(ConfigurationError("Please specify at least three dice."))
        dice = []
        for index, spec in enumerate(specs, start=1):
            tokens = [t.strip() for t in spec.split(',')]
            if len(tokens) != FACES_PER_DIE:
                return Err(ConfigurationError(
                    f"Invalid dice configuration at index {index}: {spec!r} "
                    f"(expected {FACES_PER_DIE} comma-separated values, got {len(tokens)})."
                ))
            if not all(_INTEGER_RE.match(t) for t in tokens):
                return Err(ConfigurationError(
                    f"Invalid dice configuration at index {index}: {spec!r} "
                    f"(all dice faces must be integer values)."
                ))
            dice.append(Die(tuple(int(t) for t in tokens)))
        logger.debug("Built a pool of %d dice", len(dice))
        return Ok(tuple(dice))

# ==============================================================================
# 4. Cryptographic Operations Provider
# ==============================================================================

class CryptoProvider:
    """Secure random source. Anything with these two methods can stand in for it."""

    @staticmethod
    def token_bytes(size: int) -> bytes:
        return secrets.token_bytes(size)

    @staticmethod
    def randbelow(upper: int) -> int:
        return secrets.randbelow(upper)


def calculate_hmac(key: bytes, message_int: int) -> str:
    message_bytes = str(message_int).encode('utf-8')
    h = hmac.new(key, message_bytes, hashlib.sha3_256)
    return h.hexdigest().upper()


def verify_commitment(key: bytes, value: int, digest: str) -> bool:
    """Recompute the HMAC of a disclosed value and compare it to the published digest."""
    return hmac.compare_digest(calculate_hmac(key, value), digest.upper())

# ==============================================================================
# 5. Provably Fair Random Protocol
# ==============================================================================

@dataclass(frozen=True)
class Commitment:
    secret_key: bytes = field(repr=False)
    value: int = field(repr=False)
    digest: str
    low: int
    high: int

    def verify(self) -> bool:
        if not self.low <= self.value <= self.high:
            return False
        return verify_commitment(self.secret_key, self.value, self.digest)


class FairRandomProtocol:
    """
    Commit-before-reveal random draws.

    draw() fixes a value and returns its HMAC commitment; disclose() hands out the
    key afterwards. Only one commitment may be pending at a time, so every draw
    has to be disclosed before the next one is issued.
    """

    def __init__(self, source=None):
        self.source = source if source is not None else CryptoProvider()
        self._pending: Optional[Commitment] = None

    @property
    def pending(self) -> Optional[Commitment]:
        return self._pending

    def draw(self, low: int, high: int) -> Commitment:
        if low > high:
            raise ValueError(f"Empty range: {low}..{high}")
        if self._pending is not None:
            raise ProtocolMisuseError("The previous draw has not been disclosed yet.")
        key = self.source.token_bytes(KEY_SIZE)
        value = low + self.source.randbelow(high - low + 1)
        commitment = Commitment(key, value, calculate_hmac(key, value), low, high)
        self._pending = commitment
        logger.debug("Committed draw in range %d..%d (HMAC=%s)", low, high, commitment.digest)
        return commitment

    def disclose(self, commitment: Commitment) -> bytes:
        if self._pending is None:
            raise ProtocolMisuseError("disclose() called without a pending draw.")
        if commitment is not self._pending:
            raise ProtocolMisuseError("Only the most recent draw can be disclosed.")
        self._pending = None
        logger.debug("Disclosed draw %d (HMAC=%s)", commitment.value, commitment.digest)
        return commitment.secret_key

# ==============================================================================
# 6. Probability Calculation Logic
# ==============================================================================

class WinProbabilityMatrix:
    @staticmethod
    def win_fraction(die_a: Die, die_b: Die) -> Fraction:
        wins = sum(1 for a in die_a.faces for b in die_b.faces if a > b)
        return Fraction(wins, len(die_a) * len(die_b))

    @staticmethod
    def win_rate(die_a: Die, die_b: Die) -> float:
        return round(float(WinProbabilityMatrix.win_fraction(die_a, die_b)), 4)

    @staticmethod
    def full_matrix(pool) -> dict[tuple[int, int], float]:
        # Self-pairings are reported as a fixed constant.
        return {
            (i, j): SELF_WIN_RATE if i == j else WinProbabilityMatrix.win_rate(a, b)
            for i, a in enumerate(pool)
            for j, b in enumerate(pool)
        }

# ==============================================================================
# 7. Help Table Generation
# ==============================================================================

class HelpTableGenerator:
    @staticmethod
    def generate_table(all_dice) -> str:
        matrix = WinProbabilityMatrix.full_matrix(all_dice)
        headers = ["User dice v"] + [f"[{d}]" for d in all_dice]
        table_data = []
        for i, user_die in enumerate(all_dice):
            row = [f"[{user_die}]"]
            for j in range(len(all_dice)):
                rate = matrix[(i, j)]
                row.append(f"- ({rate:.4f})" if i == j else f"{rate:.4f}")
            table_data.append(row)

        intro = (
            "\nProbability of the win for the user:\n"
            "Rows are your dice, columns are the computer's dice.\n"
        )
        return intro + tabulate(table_data, headers=headers, tablefmt="grid", disable_numparse=True)

# ==============================================================================
# 8. Console User Interface
# ==============================================================================

class GameUI:
    def display_message(self, text: str):
        print(text)

    def display_hmac(self, hmac_hex: str):
        print(f"HMAC: {hmac_hex}")

    def display_key_and_move(self, key: bytes, move: int, name: str = "My choice"):
        print(f"{name}: {move} (Secret Key: {key.hex().upper()})")

    def confirm(self, prompt: str) -> bool:
        while True:
            answer = input(f"{prompt} [y/n]: ").strip().lower()
            if answer in ('y', 'yes'):
                return True
            if answer in ('n', 'no'):
                return False
            print("Please answer 'y' or 'n'.")

    def get_user_choice(self, prompt: str, options: list[str], allow_help: bool = True) -> str:
        while True:
            print(f"\n{prompt}")
            for i, option in enumerate(options):
                print(f" {i} - {option}")

            print("\n X - Exit")
            if allow_help:
                print(" ? - Help")

            choice = input("Your choice: ").strip().lower()

            if choice == 'x':
                print("Exiting game. Goodbye!")
                sys.exit(0)
            if choice == '?' and allow_help:
                return '?'

            if choice.isdigit():
                choice_int = int(choice)
                if 0 <= choice_int < len(options):
                    return str(choice_int)

            print("Invalid choice. Please enter a valid number, '?', or 'X'.")

# ==============================================================================
# 9. Game State
# ==============================================================================

class TurnOrder(Enum):
    HUMAN_FIRST = "human_first"
    COMPUTER_FIRST = "computer_first"


class RoundResult(Enum):
    WIN = "win"
    LOSE = "lose"
    TIE = "tie"


class Winner(Enum):
    HUMAN = "human"
    COMPUTER = "computer"
    TIE = "tie"


class SessionState(Enum):
    CHOOSING_FIRST_PLAYER = "choosing_first_player"
    ROUND_IN_PROGRESS = "round_in_progress"
    GAME_OVER = "game_over"


@dataclass(frozen=True)
class RoundOutcome:
    user_roll: int
    computer_roll: int

    @property
    def result(self) -> RoundResult:
        if self.user_roll > self.computer_roll:
            return RoundResult.WIN
        if self.user_roll < self.computer_roll:
            return RoundResult.LOSE
        return RoundResult.TIE


@dataclass
class Score:
    user_wins: int = 0
    computer_wins: int = 0

    def record(self, outcome: RoundOutcome):
        if outcome.result is RoundResult.WIN:
            self.user_wins += 1
        elif outcome.result is RoundResult.LOSE:
            self.computer_wins += 1

    @property
    def winner(self) -> Winner:
        if self.user_wins > self.computer_wins:
            return Winner.HUMAN
        if self.computer_wins > self.user_wins:
            return Winner.COMPUTER
        return Winner.TIE


@dataclass(frozen=True)
class GameResult:
    score: Score
    turn_order: TurnOrder
    rounds: tuple[RoundOutcome, ...]
    unused_user_dice: int
    unused_computer_dice: int

    @property
    def winner(self) -> Winner:
        return self.score.winner

# ==============================================================================
# 10. Game Session
# ==============================================================================

@dataclass
class GameSettings:
    enforce_turn_order: bool = False
    verbose: bool = False
    invocation_command: str = "python"

    FLAGS = ("--enforce-turn-order", "--verbose")

    @classmethod
    def from_argv(cls, argv: list[str]) -> tuple["GameSettings", list[str]]:
        """Split known flags from the dice specs. Anything else is treated as a die."""
        settings = cls(
            enforce_turn_order="--enforce-turn-order" in argv,
            verbose="--verbose" in argv,
            invocation_command='py' if 'py.exe' in sys.executable.lower() else 'python',
        )
        specs = [arg for arg in argv if arg not in cls.FLAGS]
        return settings, specs


class GameSession:
    def __init__(self, dice, ui, protocol: FairRandomProtocol,
                 settings: Optional[GameSettings] = None,
                 help_table: Optional[Callable[[], str]] = None):
        self.all_dice = tuple(dice)
        self.ui = ui
        self.protocol = protocol
        self.settings = settings or GameSettings()
        self.help_table = help_table or (lambda: HelpTableGenerator.generate_table(self.all_dice))
        self.state = SessionState.CHOOSING_FIRST_PLAYER
        self.turn_order: Optional[TurnOrder] = None
        self.remaining_user_dice: list[Die] = []
        self.remaining_computer_dice: list[Die] = []
        self.score = Score()
        self.rounds: list[RoundOutcome] = []

    def play(self) -> GameResult:
        self.state = SessionState.CHOOSING_FIRST_PLAYER
        self.score = Score()
        self.rounds = []
        self.turn_order = self.determine_first_player()
        self.remaining_user_dice = list(self.all_dice)
        self.remaining_computer_dice = list(self.all_dice)
        self.state = SessionState.ROUND_IN_PROGRESS

        while self.remaining_user_dice and self.remaining_computer_dice:
            self.play_round()

        self.state = SessionState.GAME_OVER
        result = GameResult(
            score=replace(self.score),
            turn_order=self.turn_order,
            rounds=tuple(self.rounds),
            unused_user_dice=len(self.remaining_user_dice),
            unused_computer_dice=len(self.remaining_computer_dice),
        )
        self._report(result)
        return result

    def determine_first_player(self) -> TurnOrder:
        self.ui.display_message("\nLet's determine who makes the first move.")
        # The guess is taken before the coin is drawn.
        guess = int(self.ui.get_user_choice("Heads (0) or Tails (1)?", ["0", "1"], allow_help=False))
        flip = self._fair_draw(0, 1, "Computer's choice")

        if guess == flip:
            self.ui.display_message("You go first!")
            return TurnOrder.HUMAN_FIRST
        self.ui.display_message("Computer goes first!")
        return TurnOrder.COMPUTER_FIRST

    def play_round(self) -> RoundOutcome:
        self.ui.display_message(f"\n--- Round {len(self.rounds) + 1} ---")
        computer_leads = (self.settings.enforce_turn_order
                          and self.turn_order is TurnOrder.COMPUTER_FIRST)

        if computer_leads:
            computer_roll = self._computer_turn()
            user_roll = self._user_turn()
        else:
            user_roll = self._user_turn()
            computer_roll = self._computer_turn()

        outcome = RoundOutcome(user_roll, computer_roll)
        self.score.record(outcome)
        self.rounds.append(outcome)

        if outcome.result is RoundResult.WIN:
            self.ui.display_message(f"You win this round! ({user_roll} > {computer_roll})")
        elif outcome.result is RoundResult.LOSE:
            self.ui.display_message(f"Computer wins this round! ({computer_roll} > {user_roll})")
        else:
            self.ui.display_message("This round is a tie!")
        return outcome

    def _user_turn(self) -> int:
        index = self._get_player_die_choice()
        die = self.remaining_user_dice.pop(index)
        self.ui.display_message(f"You chose [{die}]. Rolling...")
        roll = die.faces[self._fair_draw(0, FACES_PER_DIE - 1, "Face index")]
        self.ui.display_message(f"You rolled: {roll}")
        return roll

    def _computer_turn(self) -> int:
        index = self._fair_draw(0, len(self.remaining_computer_dice) - 1, "Computer's die index")
        die = self.remaining_computer_dice.pop(index)
        self.ui.display_message(f"Computer chose [{die}]. Rolling...")
        roll = die.faces[self._fair_draw(0, FACES_PER_DIE - 1, "Face index")]
        self.ui.display_message(f"Computer rolled: {roll}")
        return roll

    def _get_player_die_choice(self) -> int:
        while True:
            options = [f"[{d}]" for d in self.remaining_user_dice]
            choice_str = self.ui.get_user_choice("Choose your dice:", options, allow_help=True)
            if choice_str == '?':
                self.ui.display_message(self.help_table())
                continue
            return int(choice_str)

    def _fair_draw(self, low: int, high: int, name: str) -> int:
        commitment = self.protocol.draw(low, high)
        self.ui.display_message(f"I have chosen a random value in range {low}..{high}.")
        self.ui.display_hmac(commitment.digest)
        key = self.protocol.disclose(commitment)
        self.ui.display_key_and_move(key, commitment.value, name=name)
        return commitment.value

    def _report(self, result: GameResult):
        score = result.score
        self.ui.display_message("\n--- Game Over ---")
        self.ui.display_message(f"Final Score: You {score.user_wins} - {score.computer_wins} Computer")

        if result.winner is Winner.HUMAN:
            self.ui.display_message("Congratulations, you win the game!")
        elif result.winner is Winner.COMPUTER:
            self.ui.display_message("Computer wins the game!")
        else:
            self.ui.display_message("It's a tie overall!")

        if result.unused_user_dice:
            self.ui.display_message(f"{result.unused_user_dice} die(s) left unused for the user.")
        if result.unused_computer_dice:
            self.ui.display_message(f"{result.unused_computer_dice} die(s) left unused for the computer.")
        logger.debug("Game finished after %d rounds: %s", len(result.rounds), result.winner.value)

# ==============================================================================
# 11. Main Execution Block
# ==============================================================================

def main(argv: Optional[list[str]] = None) -> int:
    settings, specs = GameSettings.from_argv(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if settings.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ConfigurationError.set_invocation_command(settings.invocation_command)

    result = DiceSetBuilder.build(specs)
    if isinstance(result, Err):
        print(result.error, file=sys.stderr)
        return 1

    dice = result.pool
    ui = GameUI()
    try:
        if ui.confirm("Would you like to see the help table?"):
            ui.display_message(HelpTableGenerator.generate_table(dice))
        session = GameSession(dice, ui, FairRandomProtocol(), settings)
        session.play()
        ui.display_message("Thank you for playing!")
    except (KeyboardInterrupt, EOFError):
        print("\nGame interrupted. Goodbye!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
