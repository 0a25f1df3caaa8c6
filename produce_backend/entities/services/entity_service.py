# entities/services/entity_service.py

"""
COUNTERPARTY MASTER DATA

- customers: any holder of entities.manage_customers (counter staff included)
- suppliers: entities.manage_suppliers (admins only)
- entity_type is fixed once the counterparty has invoices, because invoice
  direction is tied to it
"""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from entities.models import Counterparty
from permissions.roles import CAP_ENTITIES_MANAGE_CUSTOMERS, CAP_ENTITIES_MANAGE_SUPPLIERS

logger = logging.getLogger(__name__)


class CounterpartyError(ValueError):
    pass


class CounterpartyPermissionError(CounterpartyError):
    pass


_EDITABLE_FIELDS = ("name", "entity_type", "phone", "location", "is_active")


def capability_for_type(entity_type: str) -> str:
    if entity_type == Counterparty.TYPE_SUPPLIER:
        return CAP_ENTITIES_MANAGE_SUPPLIERS
    return CAP_ENTITIES_MANAGE_CUSTOMERS


def _require_manage(acting_user, entity_type: str) -> None:
    capability = capability_for_type(entity_type)
    if not acting_user.has_capability(capability):
        raise CounterpartyPermissionError(
            f"Not allowed to manage {entity_type}s ('{capability}' required)"
        )


@transaction.atomic
def upsert_counterparty(*, acting_user, counterparty_id=None, **fields) -> Counterparty:
    """
    Create a counterparty, or update one when counterparty_id is given.

    Unknown keys in `fields` are ignored.
    """
    data = {k: v for k, v in fields.items() if k in _EDITABLE_FIELDS}

    if counterparty_id is None:
        entity_type = data.get("entity_type") or Counterparty.TYPE_CUSTOMER
        _require_manage(acting_user, entity_type)
        data["entity_type"] = entity_type
        try:
            counterparty = Counterparty.objects.create(**data)
        except ValidationError as exc:
            raise CounterpartyError(_first_message(exc)) from exc

        logger.info(
            "Counterparty created",
            extra={
                "counterparty_id": str(counterparty.id),
                "entity_type": counterparty.entity_type,
                "acting_user_id": acting_user.id,
            },
        )
        return counterparty

    try:
        counterparty = Counterparty.objects.select_for_update().get(id=counterparty_id)
    except (Counterparty.DoesNotExist, ValueError, ValidationError) as exc:
        raise CounterpartyError("Counterparty not found") from exc

    # both the current and the requested type must be manageable
    _require_manage(acting_user, counterparty.entity_type)
    new_type = data.get("entity_type", counterparty.entity_type)
    if new_type != counterparty.entity_type:
        _require_manage(acting_user, new_type)
        if counterparty.invoices.exists():
            raise CounterpartyError("entity_type cannot change once invoices exist")

    for key, value in data.items():
        setattr(counterparty, key, value)

    try:
        counterparty.save()
    except ValidationError as exc:
        raise CounterpartyError(_first_message(exc)) from exc

    return counterparty


def _first_message(exc: ValidationError) -> str:
    if hasattr(exc, "message_dict"):
        for field, messages in exc.message_dict.items():
            if messages:
                return f"{field}: {messages[0]}"
    return exc.messages[0] if exc.messages else "Invalid counterparty"
