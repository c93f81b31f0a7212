"""Domain errors raised by the Americano tournament controller and service."""


class AmericanoError(Exception):
    """Base class for recoverable tournament errors."""


class TournamentNotFound(AmericanoError, LookupError):
    pass


class MatchNotFound(AmericanoError, LookupError):
    pass


class PlayerNotFound(AmericanoError, LookupError):
    pass


class MatchAlreadyCompleted(AmericanoError):
    """Scores were already recorded for this match."""


class InvalidScore(AmericanoError, ValueError):
    """Scores are negative or do not add up to the configured points per match."""


class PlayerChangeNotAllowed(AmericanoError):
    """The player pool cannot change this way in the tournament's current state."""


class InvalidTournament(AmericanoError, ValueError):
    """Tournament settings or player list cannot be used."""
