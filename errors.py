class SportsbookError(Exception):
    """Base error for the sportsbook core."""


class NotFoundError(SportsbookError):
    entity = "Record"

    def __init__(self, entity_id: int) -> None:
        self.entity_id = entity_id
        super().__init__(f"{self.entity} with ID {entity_id} not found")


class MatchNotFoundError(NotFoundError):
    entity = "Match"


class MarketNotFoundError(NotFoundError):
    entity = "Market"


class BetNotFoundError(NotFoundError):
    entity = "Bet"


class UserNotFoundError(NotFoundError):
    entity = "User"


class LeagueNotFoundError(NotFoundError):
    entity = "League"


class TeamNotFoundError(NotFoundError):
    entity = "Team"


class InvalidStateError(SportsbookError):
    """Operation not allowed in the record's current status."""


class InvalidScoreError(SportsbookError):
    """Score data missing or inconsistent for the requested transition."""


class InvalidBetError(SportsbookError):
    pass


class MarketLockedError(InvalidBetError):
    def __init__(self, market_id: int) -> None:
        self.market_id = market_id
        super().__init__(f"Market with ID {market_id} is locked")


class InsufficientBalanceError(SportsbookError):
    def __init__(self, user_id: int, balance: float, amount: float) -> None:
        self.user_id = user_id
        self.balance = balance
        self.amount = amount
        super().__init__(f"Insufficient balance for user {user_id}: {balance:.2f} < {amount:.2f}")


class ResultFeedError(SportsbookError):
    """The external result feed could not provide a usable score."""
