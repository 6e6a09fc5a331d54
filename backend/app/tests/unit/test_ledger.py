############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# test_ledger.py: Unit tests for the request ledger
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Unit tests for RequestLedger and tracking ids."""

from unittest.mock import patch

import pytest

from backend.app.db.models import NodeRequestStatus, NodeType, TokenRequestStatus
from backend.app.services import ledger as ledger_module
from backend.app.services.ledger import (
    TRACKING_ID_PATTERN,
    RequestKind,
    generate_tracking_id,
    parse_amount,
)
from backend.app.services.results import DuplicateSource, FailureKind


class TestTrackingIds:
    def test_format(self):
        assert TRACKING_ID_PATTERN.match(generate_tracking_id("REQ"))
        assert TRACKING_ID_PATTERN.match(generate_tracking_id("TKN"))

    def test_ten_thousand_ids_are_unique(self):
        counter = iter(range(10_000))
        with patch.object(
            ledger_module.secrets, "token_hex", side_effect=lambda n: f"{next(counter):0{2 * n}x}"
        ) as token_hex:
            ids = [generate_tracking_id("REQ") for _ in range(10_000)]

        token_hex.assert_called_with(4)
        assert len(set(ids)) == 10_000
        assert all(TRACKING_ID_PATTERN.match(tracking_id) for tracking_id in ids)
        assert ids[255] == "REQ-000000FF"

    @pytest.mark.asyncio
    async def test_collision_is_retried(self, ledger, node_payload, token_payload):
        first = await ledger.create_token_request(token_payload)

        with patch.object(
            ledger_module,
            "generate_tracking_id",
            side_effect=[first.tracking_id, "TKN-0000BEEF"],
        ):
            second = await ledger.create_token_request(token_payload)

        assert second.tracking_id == "TKN-0000BEEF"

    @pytest.mark.asyncio
    async def test_gives_up_after_bounded_attempts(self, database, token_payload):
        ledger = ledger_module.RequestLedger(database, tracking_id_attempts=2)
        first = await ledger.create_token_request(token_payload)

        with patch.object(ledger_module, "generate_tracking_id", return_value=first.tracking_id):
            result = await ledger.submit_token_request(token_payload)

        assert not result.success
        assert result.kind == FailureKind.STORAGE


class TestAmounts:
    @pytest.mark.parametrize("value", ["1", "0.5", "100000000000000000000", " 42 "])
    def test_positive_amounts(self, value):
        assert parse_amount(value) is not None

    @pytest.mark.parametrize("value", ["0", "-1", "abc", "", "NaN", "Infinity", None])
    def test_rejected_amounts(self, value):
        assert parse_amount(value) is None


class TestCreation:
    """Requests always start pending, whatever the caller sends."""

    @pytest.mark.asyncio
    async def test_node_request_forced_pending(self, ledger, node_payload):
        payload = dict(
            node_payload,
            status="approved",
            tracking_id="REQ-DEADBEEF",
            admin_notes="pre-approved",
        )
        request = await ledger.create_node_request(payload)

        assert request.status == NodeRequestStatus.PENDING
        assert request.tracking_id != "REQ-DEADBEEF"
        assert request.tracking_id.startswith("REQ-")
        assert request.admin_notes is None

    @pytest.mark.asyncio
    async def test_token_request_forced_pending(self, ledger, token_payload):
        payload = dict(token_payload, status="transferred", transferred_amount="5")
        request = await ledger.create_token_request(payload)

        assert request.status == TokenRequestStatus.PENDING
        assert request.tracking_id.startswith("TKN-")
        assert request.transferred_amount is None

    @pytest.mark.asyncio
    async def test_invalid_payload_raises(self, ledger, node_payload):
        with pytest.raises(ValueError):
            await ledger.create_node_request(dict(node_payload, name=""))


class TestSubmission:
    @pytest.mark.asyncio
    async def test_submit_node_request(self, ledger, node_payload):
        result = await ledger.submit_node_request(node_payload)

        assert result.success
        assert result.request.node_type == NodeType.BOOTNODE
        assert result.request.endpoint == node_payload["endpoint"]

    @pytest.mark.asyncio
    async def test_endpoint_is_stripped(self, ledger, node_payload):
        result = await ledger.submit_node_request(
            dict(node_payload, endpoint="  " + node_payload["endpoint"] + "\n")
        )
        assert result.request.endpoint == node_payload["endpoint"]

    @pytest.mark.asyncio
    async def test_duplicate_submission_rejected(self, ledger, node_payload):
        first = await ledger.submit_node_request(node_payload)
        second = await ledger.submit_node_request(node_payload)

        assert not second.success
        assert second.kind == FailureKind.CONFLICT
        assert second.duplicate.source == DuplicateSource.NODE_REQUEST
        assert first.request.tracking_id in second.error
        assert len(await ledger.list_node_requests()) == 1

    @pytest.mark.asyncio
    async def test_unknown_node_type(self, ledger, node_payload):
        result = await ledger.submit_node_request(dict(node_payload, node_type="validator"))
        assert not result.success
        assert result.kind == FailureKind.VALIDATION

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field, value",
        [
            ("name", ""),
            ("endpoint", "   "),
            ("contact_email", None),
            ("contact_email", "not-an-email"),
        ],
    )
    async def test_invalid_node_fields(self, ledger, node_payload, field, value):
        result = await ledger.submit_node_request(dict(node_payload, **{field: value}))
        assert result.kind == FailureKind.VALIDATION

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "node_type, length, accepted",
        [
            ("rpc", 500, True),
            ("rpc", 501, False),
            ("bootnode", 700, True),
            ("beacon", 700, True),
            ("beacon", 701, False),
        ],
    )
    async def test_endpoint_length_per_node_type(
        self, ledger, node_payload, node_type, length, accepted
    ):
        endpoint = "https://" + "a" * (length - len("https://"))
        result = await ledger.submit_node_request(
            dict(node_payload, node_type=node_type, endpoint=endpoint)
        )

        assert result.success is accepted
        if not accepted:
            assert result.kind == FailureKind.VALIDATION
            assert "at most" in result.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field, value",
        [
            ("wallet_address", "0x123"),
            ("requested_amount", "-5"),
            ("requested_amount", "lots"),
            ("email", "nope"),
            ("reason", ""),
        ],
    )
    async def test_invalid_token_fields(self, ledger, token_payload, field, value):
        result = await ledger.submit_token_request(dict(token_payload, **{field: value}))
        assert result.kind == FailureKind.VALIDATION


class TestReads:
    @pytest.mark.asyncio
    async def test_tracking_id_lookup_is_case_insensitive(self, ledger, node_payload):
        request = await ledger.create_node_request(node_payload)

        found = await ledger.get_node_request_by_tracking_id(f"  {request.tracking_id.lower()} ")
        assert found is not None
        assert found.id == request.id

    @pytest.mark.asyncio
    async def test_unknown_tracking_id(self, ledger):
        assert await ledger.get_token_request_by_tracking_id("TKN-00000000") is None
        assert await ledger.get_node_request_by_tracking_id("") is None

    @pytest.mark.asyncio
    async def test_list_newest_first_and_filter(self, ledger, node_payload):
        first = await ledger.create_node_request(node_payload)
        second = await ledger.create_node_request(dict(node_payload, endpoint="enode://other@1.2.3.4:30303"))

        listed = await ledger.list_node_requests()
        assert [r.id for r in listed] == [second.id, first.id]

        assert len(await ledger.list_node_requests(NodeRequestStatus.PENDING)) == 2
        assert await ledger.list_node_requests(NodeRequestStatus.APPROVED) == []

    @pytest.mark.asyncio
    async def test_count_by_status(self, ledger, node_payload, token_payload):
        await ledger.create_node_request(node_payload)
        await ledger.create_token_request(token_payload)
        await ledger.create_token_request(token_payload)

        counts = await ledger.count_by_status()
        assert counts["node_requests"] == {"pending": 1, "approved": 0, "rejected": 0}
        assert counts["token_requests"]["pending"] == 2
        assert counts["token_requests"]["transferred"] == 0


class TestAdminEdits:
    @pytest.mark.asyncio
    async def test_update_notes_keeps_status(self, ledger, node_payload):
        request = await ledger.create_node_request(node_payload)

        result = await ledger.update_admin_notes(RequestKind.NODE, request.id, "checked peers")
        assert result.success

        stored = await ledger.get_node_request(request.id)
        assert stored.admin_notes == "checked peers"
        assert stored.status == NodeRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_notes_unknown_request(self, ledger):
        result = await ledger.update_admin_notes("token", 999, "x")
        assert result.kind == FailureKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete(self, ledger, token_payload):
        request = await ledger.create_token_request(token_payload)

        assert (await ledger.delete_token_request(request.id)).success
        assert await ledger.get_token_request(request.id) is None
        assert (await ledger.delete_token_request(request.id)).kind == FailureKind.NOT_FOUND
