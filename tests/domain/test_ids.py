"""Tests for id normalization of workflow-engine payloads."""

import pytest

from promptverse.core.exceptions import ValidationError
from promptverse.domain.ids import normalize_id

pytestmark = pytest.mark.unit

OBJECT_ID = "65a1f0c2b3d4e5f6a7b8c9d0"


class TestNormalizeId:
    def test_plain_string(self):
        assert normalize_id(OBJECT_ID) == OBJECT_ID

    def test_oid_wrapper_unwrapped(self):
        assert normalize_id({"$oid": OBJECT_ID}) == OBJECT_ID

    def test_uuid_with_dashes_and_uppercase(self):
        assert normalize_id("1B4E28BA-2FA1-11D2-883F-0016D3CCA427") == "1b4e28ba2fa111d2883f0016d3cca427"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_values_are_none(self, value):
        assert normalize_id(value) is None

    def test_wrapper_with_extra_keys_rejected(self):
        with pytest.raises(ValidationError, match="unsupported id wrapper"):
            normalize_id({"$oid": OBJECT_ID, "extra": 1}, "scheduledPromptId")

    def test_non_string_rejected(self):
        with pytest.raises(ValidationError, match="expected string id"):
            normalize_id(12345, "userId")

    def test_non_hex_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_id("not-an-id", "reportId")
        assert "reportId" in exc_info.value.message
        assert exc_info.value.status_code == 400
