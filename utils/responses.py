from fastapi import HTTPException, status
from schemas.results import ErrorCode, ServiceResult

ERROR_STATUS = {
    ErrorCode.CONNECTION_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.DATABASE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.TABLE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.SESSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ORDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RECEIPT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.TABLE_INACTIVE: status.HTTP_409_CONFLICT,
    ErrorCode.SESSION_INACTIVE: status.HTTP_409_CONFLICT,
    ErrorCode.SESSION_EXPIRED: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.NO_UNPAID_ORDERS: status.HTTP_409_CONFLICT,
    ErrorCode.MENU_ITEM_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_TOKEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.TABLE_HAS_ACTIVE_SESSION: status.HTTP_409_CONFLICT,
    ErrorCode.PAYMENT_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.PAYMENT_DECLINED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.UNPAID_ORDERS: status.HTTP_409_CONFLICT,
}

# Result fields worth echoing back to the client with the error
DETAIL_FIELDS = ["existing_session_id", "outstanding_amount", "transaction_id"]


def raise_for_result(result: ServiceResult):
    """Turn a failed service result into an HTTPException; successful results pass through."""
    if result.success:
        return result

    detail = {"code": result.error_code.value if result.error_code else None, "message": result.error}
    for field in DETAIL_FIELDS:
        value = getattr(result, field, None)
        if value is not None:
            detail[field] = value

    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
        detail=detail,
    )
