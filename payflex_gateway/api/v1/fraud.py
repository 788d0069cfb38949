"""POST /v1/fraud/check and GET /v1/fraud/score/{did}"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from payflex_gateway.api.v1.schemas import FraudAssessmentResponse, FraudCheckRequest, FraudScoreResponse
from payflex_gateway.api.dependencies import get_fraud_scorer, get_request_id
from payflex_gateway.config import settings
from payflex_gateway.domain.exceptions import ExternalScoringUnavailable, StorageUnavailable, SubjectNotFound
from payflex_gateway.domain.fraud import FraudScorer
from payflex_gateway.infrastructure.database.repositories import commit
from payflex_gateway.infrastructure.database.session import get_db

router = APIRouter()


@router.post("/fraud/check", response_model=FraudAssessmentResponse)
async def check_fraud(
    request_body: FraudCheckRequest,
    request: Request,
    db: Session = Depends(get_db),
    scorer: FraudScorer = Depends(get_fraud_scorer),
):
    """Assess a subject and store the composite as its latest fraud score"""
    request_id = get_request_id(request)

    try:
        assessment = await scorer.assess(
            request_body.did,
            request_body.ip_address or settings.default_network_address,
        )
        commit(db)

    except SubjectNotFound as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except ExternalScoringUnavailable as e:
        db.rollback()
        logging.error(f"Risk vendor error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Risk scoring service unavailable")

    except StorageUnavailable as e:
        db.rollback()
        logging.error(f"Storage error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Storage unavailable")

    return FraudAssessmentResponse(
        did=assessment.subject_identity,
        internal_score=assessment.internal_score,
        external_score=assessment.external_score,
        fraud_score=assessment.composite_score,
        is_blocked=assessment.is_blocked,
    )


@router.get("/fraud/score/{did}", response_model=FraudScoreResponse)
def get_fraud_score(did: str, scorer: FraudScorer = Depends(get_fraud_scorer)):
    """Latest stored composite score for a subject"""
    score = scorer.latest_score(did)
    if score is None:
        raise HTTPException(status_code=404, detail="No fraud score recorded")
    return FraudScoreResponse(did=did, score=score)
