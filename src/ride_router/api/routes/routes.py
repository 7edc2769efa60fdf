"""Routing endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...schemas.routing import RoutingRequestModel, RoutingResponse
from ...services.routing.errors import CapacityExceeded, OracleFailure, RoutingCancelled
from ...services.routing.service import calculate_routes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routes", tags=["routes"])


@router.post("/calculate", response_model=RoutingResponse, status_code=status.HTTP_200_OK)
def calculate(payload: RoutingRequestModel) -> RoutingResponse:
    try:
        return calculate_routes(payload)
    except CapacityExceeded as exc:
        logger.warning(f"Routing failed: {exc}")
        raise HTTPException(
            status_code=422,
            detail={"error": str(exc), **exc.to_dict()},
        ) from exc
    except OracleFailure as exc:
        logger.error(f"Distance service failure: {exc}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Distance calculation failed: {exc}",
        ) from exc
    except RoutingCancelled as exc:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        # Log the full error for debugging
        logging.exception(f"Error calculating routes: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to calculate routes: {str(exc)}"
        ) from exc
