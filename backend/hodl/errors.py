"""Domain errors raised by the game services.

Route handlers translate these into JSON responses; nothing in here knows
about HTTP status codes.
"""


class GameError(Exception):
    """Base class for expected, client-visible game failures."""


class GuessInProgress(GameError):
    def __init__(self, existing_guess_id: str):
        super().__init__(f"guess {existing_guess_id} is still pending")
        self.existing_guess_id = existing_guess_id


class PriceUnavailable(GameError):
    """No price sample has been recorded yet."""


class AtCapacity(GameError):
    def __init__(self, active_users: int, max_users: int):
        super().__init__(f"{active_users} active players (max {max_users})")
        self.active_users = active_users
        self.max_users = max_users


class GuessNotFound(GameError):
    def __init__(self, guess_id: str):
        super().__init__(f"guess not found: {guess_id}")
        self.guess_id = guess_id


class PriceSourceError(Exception):
    """A single price source failed to produce a usable price."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class AllSourcesUnavailable(Exception):
    def __init__(self, failures):
        super().__init__('all price sources failed: ' + '; '.join(str(f) for f in failures))
        self.failures = list(failures)
