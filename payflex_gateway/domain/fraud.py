"""Fraud scoring - blends internal history with an external vendor figure"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from payflex_gateway.config import settings
from payflex_gateway.domain.exceptions import SubjectNotFound
from payflex_gateway.domain.models import FraudAssessment
from payflex_gateway.infrastructure.clients.risk_vendor import RiskVendorClient
from payflex_gateway.infrastructure.database.repositories import AccountRepository, FraudScoreRepository
from payflex_gateway.infrastructure.observability.metrics import record_assessment

logger = logging.getLogger(__name__)


def calculate_composite_score(
    internal_score: int,
    external_score: int,
    internal_weight: float = 0.7,
    external_weight: float = 0.3,
) -> int:
    """
    Weighted blend of internal and external risk, rounded half up.

    Scoring weights:
    - 70%: Internal score (subject's own ledger history)
    - 30%: External vendor score (contact details, network address)

    Decimal arithmetic keeps exact halves (e.g. 60.5) from drifting below
    the rounding boundary.
    """
    blended = (
        Decimal(str(internal_weight)) * internal_score
        + Decimal(str(external_weight)) * external_score
    )
    return int(blended.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_blocked(composite_score: int, threshold: int = 80) -> bool:
    """Transfers are refused strictly above the threshold"""
    return composite_score > threshold


class FraudScorer:
    """Gate for money movement: assess(subject, signal) -> FraudAssessment"""

    def __init__(
        self,
        accounts: AccountRepository,
        scores: FraudScoreRepository,
        vendor: RiskVendorClient,
    ):
        self.accounts = accounts
        self.scores = scores
        self.vendor = vendor

    async def assess(self, subject_identity: str, network_address: str) -> FraudAssessment:
        """
        Score a subject and persist the composite as its latest fraud score.

        Raises:
            SubjectNotFound: identity is not a known account
            ExternalScoringUnavailable: vendor failed; never treated as zero
        """
        account = self.accounts.get_by_did(subject_identity)
        if account is None:
            raise SubjectNotFound(f"No account for {subject_identity}")

        internal = self.scores.get_internal_score(subject_identity)
        if internal is None:
            internal = settings.fraud_default_internal_score

        external = await self.vendor.score_order(
            email=account.email,
            phone=account.phone_number,
            ip_address=network_address,
            amount=settings.fraud_nominal_amount,
        )

        composite = calculate_composite_score(
            internal,
            external,
            settings.fraud_internal_weight,
            settings.fraud_external_weight,
        )
        blocked = is_blocked(composite, settings.fraud_block_threshold)

        self.scores.upsert_score(subject_identity, composite)
        record_assessment(blocked)

        logger.info(
            "Fraud assessment completed",
            extra={
                "subject": subject_identity,
                "internal_score": internal,
                "external_score": external,
                "composite_score": composite,
                "blocked": blocked,
            },
        )

        return FraudAssessment(
            subject_identity=subject_identity,
            internal_score=internal,
            external_score=external,
            composite_score=composite,
            is_blocked=blocked,
        )

    def latest_score(self, subject_identity: str) -> Optional[int]:
        """Most recently persisted composite score, if the subject was ever assessed"""
        return self.scores.get_score(subject_identity)
