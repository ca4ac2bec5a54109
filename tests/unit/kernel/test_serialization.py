from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import pytest

from partsrunner.kernel.serialization import json_dumps_canonical, to_jsonable
from partsrunner.sync.models import DeliveryStatus, DeliveryUpdate


@dataclass
class _Tip:
    amount: Decimal


@pytest.mark.unit
def test_to_jsonable_handles_enums_dataclasses_and_decimals():
    assert to_jsonable(DeliveryStatus.IN_TRANSIT) == "in_transit"
    assert to_jsonable(_Tip(amount=Decimal("4.50"))) == {"amount": "4.50"}


@pytest.mark.unit
def test_to_jsonable_dumps_pydantic_models_by_alias():
    update = DeliveryUpdate(id="update_1", delivery_id="d1", status="delivered", timestamp=1)
    data = to_jsonable(update)
    assert data["deliveryId"] == "d1"
    assert data["status"] == "delivered"


@pytest.mark.unit
def test_json_dumps_canonical_sorts_keys():
    assert json_dumps_canonical({"b": 1, "a": 2}) == '{"a":2,"b":1}'


@pytest.mark.unit
def test_to_jsonable_rejects_unknown_types():
    with pytest.raises(TypeError):
        to_jsonable(object())
