from decimal import Decimal, InvalidOperation

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from ..errors import AppError, ScheduleValidationError
from ..security import current_user_id, roles_required
from ..services.payment_scheduler import PaymentScheduler
from ..services.schedule_dates import UTILITY_TYPES, PaymentType

bp = Blueprint("payment_schedule", __name__)

VALID_TYPES = [t.value for t in PaymentType]
VALID_UTILITY_TYPES = [t.value for t in UTILITY_TYPES]


def _scheduler():
    return PaymentScheduler.from_app(current_app)


def _parse_int(value):
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(value)
    return int(value)


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ScheduleValidationError("Request body must be a JSON object", code="INVALID_BODY")
    return data


def _require_contract_id(data):
    contract_id = data.get("contract_id")
    if not contract_id:
        raise ScheduleValidationError("contract_id is required", code="MISSING_CONTRACT_ID")
    return str(contract_id)


def _parse_year(value, scheduler):
    if value is None or value == "":
        return scheduler.current_year()
    try:
        year = _parse_int(value)
    except (TypeError, ValueError):
        raise ScheduleValidationError("Invalid year", code="INVALID_YEAR")
    low, high = current_app.config["SCHEDULE_MIN_YEAR"], current_app.config["SCHEDULE_MAX_YEAR"]
    if not low <= year <= high:
        raise ScheduleValidationError(f"Year must be between {low} and {high}", code="INVALID_YEAR")
    return year


def _parse_payment_day(value, required=False):
    if value is None or value == "":
        if required:
            raise ScheduleValidationError("payment_day is required", code="MISSING_PAYMENT_DAY")
        return None
    try:
        day = _parse_int(value)
    except (TypeError, ValueError):
        day = 0
    if not 1 <= day <= 31:
        raise ScheduleValidationError("payment_day must be between 1 and 31", code="INVALID_PAYMENT_DAY")
    return day


def _parse_amount(value, required=False):
    if value is None or value == "":
        if required:
            raise ScheduleValidationError("amount must be greater than 0", code="INVALID_AMOUNT")
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        amount = Decimal("0")
    if isinstance(value, bool) or not amount.is_finite() or amount <= 0:
        raise ScheduleValidationError("amount must be greater than 0", code="INVALID_AMOUNT")
    return amount


def _parse_type(value, allowed, missing_code, invalid_code, label):
    if not value:
        raise ScheduleValidationError(f"{label} is required", code=missing_code)
    if value not in allowed:
        raise ScheduleValidationError(
            f"Invalid {label}. Valid values: {', '.join(allowed)}", code=invalid_code
        )
    return PaymentType(value)


@bp.post("/payments/schedule/rent")
@jwt_required()
@roles_required("landlord")
def schedule_rent():
    """Schedule a year of rent payments for a contract"""
    data = _json_body()
    scheduler = _scheduler()

    contract_id = _require_contract_id(data)
    year = _parse_year(data.get("year"), scheduler)
    payment_day = _parse_payment_day(data.get("payment_day"))

    user_id = current_user_id()
    try:
        result = scheduler.schedule_rent(
            contract_id, year, payment_day, actor_id=user_id, landlord_id=user_id
        )
    except AppError:
        raise
    except Exception:
        current_app.logger.exception("Error scheduling rent payments for contract %s", contract_id)
        raise

    return jsonify({
        "success": True,
        "message": "Rent payments scheduled successfully",
        "data": result.to_dict(),
    }), 201


@bp.post("/payments/schedule/utility")
@jwt_required()
@roles_required("landlord")
def schedule_utility():
    """Schedule a year of utility payments for a contract"""
    data = _json_body()
    scheduler = _scheduler()

    contract_id = _require_contract_id(data)
    utility_type = _parse_type(
        data.get("utility_type"), VALID_UTILITY_TYPES,
        "MISSING_UTILITY_TYPE", "INVALID_UTILITY_TYPE", "utility_type",
    )
    payment_day = _parse_payment_day(data.get("payment_day"), required=True)
    amount = _parse_amount(data.get("amount"), required=True)
    year = _parse_year(data.get("year"), scheduler)

    user_id = current_user_id()
    try:
        result = scheduler.schedule_utility(
            contract_id, utility_type, payment_day, amount, year, actor_id=user_id, landlord_id=user_id
        )
    except AppError:
        raise
    except Exception:
        current_app.logger.exception("Error scheduling %s payments for contract %s", utility_type.value, contract_id)
        raise

    return jsonify({
        "success": True,
        "message": f"{utility_type.label} payments scheduled successfully",
        "data": result.to_dict(),
    }), 201


@bp.get("/payments/schedule/status/<contract_id>")
@jwt_required()
def schedule_status(contract_id):
    """Per-category schedule coverage of a contract for a year"""
    scheduler = _scheduler()
    year = _parse_year(request.args.get("year"), scheduler)

    try:
        status = scheduler.schedule_status(contract_id, year, user_id=current_user_id())
    except AppError:
        raise
    except Exception:
        current_app.logger.exception("Error getting schedule status for contract %s", contract_id)
        raise

    return jsonify({"success": True, "data": status}), 200


@bp.post("/payments/schedule/fill-gaps")
@jwt_required()
@roles_required("landlord")
def fill_gaps():
    """Backfill the missing months of one payment category.

    Rent uses the contract's monthly rent; an `amount` in the body is ignored.
    """
    data = _json_body()
    scheduler = _scheduler()

    contract_id = _require_contract_id(data)
    payment_type = _parse_type(
        data.get("type"), VALID_TYPES, "MISSING_PAYMENT_TYPE", "INVALID_PAYMENT_TYPE", "type"
    )
    year = _parse_year(data.get("year"), scheduler)
    utility = payment_type.is_utility
    payment_day = _parse_payment_day(data.get("payment_day"), required=utility)
    # rent always bills the contract rent
    amount = _parse_amount(data.get("amount"), required=True) if utility else None

    user_id = current_user_id()
    try:
        result = scheduler.fill_gaps(
            contract_id, payment_type, year, payment_day, amount, actor_id=user_id, landlord_id=user_id
        )
    except AppError:
        raise
    except Exception:
        current_app.logger.exception("Error filling %s gaps for contract %s", payment_type.value, contract_id)
        raise

    return jsonify({
        "success": True,
        "message": f"Filled {result.filled} missing payments",
        "data": result.to_dict(),
    }), 201


@bp.post("/payments/schedule/preview")
@jwt_required()
def preview_schedule():
    """Dry run of a schedule: what would be created and what would be skipped.

    As with fill-gaps, rent previews price every month at the contract rent.
    """
    data = _json_body()
    scheduler = _scheduler()

    contract_id = _require_contract_id(data)
    payment_type = _parse_type(
        data.get("type"), VALID_TYPES, "MISSING_PAYMENT_TYPE", "INVALID_PAYMENT_TYPE", "type"
    )
    year = _parse_year(data.get("year"), scheduler)
    payment_day = _parse_payment_day(data.get("payment_day"))
    amount = _parse_amount(data.get("amount")) if payment_type.is_utility else None

    try:
        preview = scheduler.preview(
            contract_id, payment_type, year, payment_day, amount, user_id=current_user_id()
        )
    except AppError:
        raise
    except Exception:
        current_app.logger.exception("Error previewing %s schedule for contract %s", payment_type.value, contract_id)
        raise

    return jsonify({"success": True, "data": preview.to_dict()}), 200
