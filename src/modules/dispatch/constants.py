"""Dispatch offer constants."""

from src.models.enums import OfferStatus

# Offer statuses that end an offer's life; resolved offers are never modified
OFFER_RESOLVED_STATUSES: set[OfferStatus] = {
    OfferStatus.ACCEPTED,
    OfferStatus.REJECTED,
    OfferStatus.EXPIRED,
    OfferStatus.SUPERSEDED,
}

# Rows the beat sweep expires per run; the next run picks up the rest
EXPIRY_SWEEP_BATCH_SIZE = 200
