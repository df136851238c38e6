from __future__ import annotations

import pytest

from estoque.auditoria import (
    CreateDetails,
    DeleteDetails,
    UpdateDetails,
    details_from_dict,
    details_to_dict,
)


@pytest.mark.parametrize(
    "details",
    [
        CreateDetails(username="maria", role="user"),
        UpdateDetails(is_active=False),
        DeleteDetails(username="joao", role="user"),
    ],
)
def test_details_round_trip_through_stored_json(details):
    assert details_from_dict(details.action, details_to_dict(details)) == details


def test_action_is_bound_to_the_variant():
    assert CreateDetails.action == "create"
    assert UpdateDetails.action == "update"
    assert DeleteDetails.action == "delete"
    assert details_to_dict(UpdateDetails(is_active=True)) == {"isActive": True}


def test_unknown_action_is_rejected():
    with pytest.raises(ValueError):
        details_from_dict("promote", {"username": "x"})


def test_incomplete_payload_is_rejected():
    with pytest.raises(ValueError):
        details_from_dict("create", {"username": "maria"})
