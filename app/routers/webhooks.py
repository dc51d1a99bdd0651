"""
Webhook routes for inbound gateway events.

The gateway POSTs raw events here; the command verifies, reconciles and
records them.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.commands.webhooks.evolution_command import EvolutionWebhookCommand
from app.db import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/evolution")
async def evolution_webhook(
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """
    Receive gateway webhook events. Verify the shared secret, reconcile
    message upserts, apply status updates and return 200.
    """
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning("Webhook invalid JSON: %s", e)
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")
    return await EvolutionWebhookCommand(db).execute(request, body)
