"""Exceptions raised by the auction core."""


class AuctionNotFoundError(Exception):
    """Raised when a post reference does not resolve to an auction."""

    def __init__(self, post_ref: str):
        super().__init__(f"Auction {post_ref} not found")
        self.post_ref = post_ref


class BidRejectedError(Exception):
    """Raised when a bid fails validation. No state was changed."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class StaleStateError(BidRejectedError):
    """Raised when another bid landed between read and write. Retryable."""

    def __init__(self, message: str = "Another bid was accepted first, please retry"):
        super().__init__("STALE_STATE", message)


class SettlementDeclinedError(Exception):
    """Raised when the winner cannot be charged; the auction falls back to public sale."""

    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    MISSING_BUYER_ACCOUNT = "MISSING_BUYER_ACCOUNT"
    MISSING_WINNING_BID = "MISSING_WINNING_BID"

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason


class BuyerNotFoundError(Exception):
    """Raised when a buyer account id does not exist."""

    def __init__(self, buyer_id):
        super().__init__(f"Buyer {buyer_id} not found")
        self.buyer_id = buyer_id
