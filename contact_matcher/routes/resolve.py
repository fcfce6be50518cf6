"""
Contact resolution API routes.

Resolve ad-hoc records or run an analyser on stored bank transactions.
Handlers that reach the contact directory are plain functions, so FastAPI
runs them in its threadpool while the directory call blocks.
"""
import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from config.resolver_config import DEFAULT_ANALYSER, get_analyser_config, list_analysers
from contact_matcher.services.contact_resolver import get_contact_resolver
from contact_matcher.services.transaction_store import get_transaction_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["resolve"])


class ResolveRequest(BaseModel):
    record: dict[str, Any] = Field(..., description="Parsed transaction data, e.g. {name, iban, ...}")
    analyser: str = Field(default=DEFAULT_ANALYSER, description="Analyser name from analysers.yaml")


class ResolveResponse(BaseModel):
    status: str
    contact_id: Optional[str]
    fields: dict[str, Any]
    error: Optional[str] = None


def _get_config(name: str):
    config = get_analyser_config(name)
    if config is None:
        raise HTTPException(status_code=404, detail=f"Unknown analyser '{name}'")
    return config


@router.get("/analysers")
async def get_analysers():
    return {"analysers": list_analysers()}


@router.post("/resolve", response_model=ResolveResponse)
def resolve_record(request: ResolveRequest):
    """Resolve a record to a contact. Nothing is written back."""
    config = _get_config(request.analyser)
    result = get_contact_resolver().resolve_with_details(request.record, config)
    return ResolveResponse(
        status=result.status,
        contact_id=result.contact_id,
        fields=result.fields,
        error=result.error,
    )


@router.post("/transactions/{transaction_id}/analyse")
def analyse_transaction(transaction_id: int, analyser: str = DEFAULT_ANALYSER):
    """Run an analyser on a stored transaction and persist the result."""
    config = _get_config(analyser)
    transaction = get_transaction_store().get(transaction_id)
    if transaction is None:
        raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} not found")

    outcome = get_contact_resolver().analyse(transaction.id, transaction.data_parsed, config)
    return outcome.to_dict()
