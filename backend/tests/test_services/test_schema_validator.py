"""
Unit tests for the schema validator

Tests cover:
- Sidewall (current nested profile) validation and measurement normalisation
- Tread validation: strict booleans, non-empty explanations
- Dotted field paths in SchemaError
- The legacy flat sidewall profile
"""
import pytest

from tyrecheck.core.exceptions import SchemaError
from tyrecheck.schemas.analysis import NOT_AVAILABLE, AnalysisResult, ViewType
from tyrecheck.services.schema_validator import SchemaProfile, validate_response
from tests.mocks.ai_mocks import sidewall_reply_dict, tread_reply_dict


class TestSidewallValidation:
    """Test sidewall replies under the current profile"""

    def test_valid_reply(self):
        result = validate_response(ViewType.SIDEWALL, sidewall_reply_dict())

        assert isinstance(result, AnalysisResult)
        assert result.safety is None
        assert result.explanations is None
        assert result.tyre_size.measurements == ("215", "55", "17")
        assert result.tyre_size.full_size == "215/55R17"
        assert result.tyre_size.is_image_clear is True

    @pytest.mark.parametrize("raw,expected", [
        (215, "215"),
        (215.0, "215"),
        ("215", "215"),
        (" 215 ", "215"),
        (17.5, "17.5"),
        ("17.5", "17.5"),
        ("17.1234567", "17.1234567"),
        (17.1234567, "17.1234567"),
        ("not available", NOT_AVAILABLE),
        ("Not Available", NOT_AVAILABLE),
    ])
    def test_measurement_normalised(self, raw, expected):
        result = validate_response(ViewType.SIDEWALL, sidewall_reply_dict(width=raw))

        assert result.tyre_size.width == expected

    @pytest.mark.parametrize("raw", ["abc", "215mm", "", 0, -5, True, None, [215], "\uff12\uff11\uff15", "\u0662\u0661\u0665"])
    def test_bad_measurement_rejected(self, raw):
        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.SIDEWALL, sidewall_reply_dict(width=raw))

        assert exc_info.value.field == "tyreSize.width"

    def test_oversized_integer_rejected(self):
        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.SIDEWALL, sidewall_reply_dict(width=int("9" * 400)))

        assert exc_info.value.field == "tyreSize.width"

    def test_missing_field_named_with_alias(self):
        reply = sidewall_reply_dict()
        del reply["tyreSize"]["aspectRatio"]

        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.SIDEWALL, reply)

        assert exc_info.value.field == "tyreSize.aspectRatio"
        assert exc_info.value.reason == "field required"
        assert "tyreSize.aspectRatio" in exc_info.value.message

    def test_string_boolean_rejected(self):
        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.SIDEWALL, sidewall_reply_dict(is_image_clear="true"))

        assert exc_info.value.field == "tyreSize.isImageClear"

    def test_empty_full_size_rejected(self):
        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.SIDEWALL, sidewall_reply_dict(full_size="  "))

        assert exc_info.value.field == "tyreSize.fullSize"

    def test_missing_tyre_size(self):
        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.SIDEWALL, {"width": "215"})

        assert exc_info.value.field == "tyreSize"

    def test_extra_fields_ignored(self):
        reply = sidewall_reply_dict()
        reply["brand"] = "Michelin"
        reply["tyreSize"]["loadIndex"] = "94"

        result = validate_response(ViewType.SIDEWALL, reply)

        assert result.to_payload() == {
            "tyreSize": {
                "width": "215",
                "aspectRatio": "55",
                "wheelDiameter": "17",
                "fullSize": "215/55R17",
                "isImageClear": True,
            }
        }

    @pytest.mark.parametrize("obj", [[], "text", 42, None])
    def test_non_object_rejected(self, obj):
        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.SIDEWALL, obj)

        assert exc_info.value.classification == "schema"


class TestTreadValidation:
    """Test tread replies"""

    def test_valid_reply(self):
        result = validate_response(ViewType.TREAD, tread_reply_dict(needs_replacement=True))

        assert result.tyre_size is None
        assert result.safety.is_safe_to_drive is True
        assert result.safety.needs_replacement is True
        assert result.explanations.tread.startswith("Centre")

    def test_wire_payload_uses_camel_case(self):
        payload = validate_response(ViewType.TREAD, tread_reply_dict()).to_payload()

        assert set(payload) == {"safety", "explanations"}
        assert set(payload["safety"]) == {
            "isSafeToDrive", "visibleDamage", "sufficientTread", "unevenWear", "needsReplacement"
        }

    def test_string_boolean_rejected(self):
        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.TREAD, tread_reply_dict(is_safe_to_drive="true"))

        assert exc_info.value.field == "safety.isSafeToDrive"

    def test_integer_boolean_rejected(self):
        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.TREAD, tread_reply_dict(uneven_wear=1))

        assert exc_info.value.field == "safety.unevenWear"

    def test_blank_explanation_rejected(self):
        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.TREAD, tread_reply_dict(wear="   "))

        assert exc_info.value.field == "explanations.wear"

    def test_missing_explanations(self):
        reply = tread_reply_dict()
        del reply["explanations"]

        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.TREAD, reply)

        assert exc_info.value.field == "explanations"

    def test_sidewall_shape_rejected_for_tread(self):
        with pytest.raises(SchemaError):
            validate_response(ViewType.TREAD, sidewall_reply_dict())

    def test_legacy_profile_validates_tread_identically(self):
        current = validate_response(ViewType.TREAD, tread_reply_dict(), SchemaProfile.CURRENT)
        legacy = validate_response(ViewType.TREAD, tread_reply_dict(), SchemaProfile.LEGACY)

        assert current == legacy


class TestLegacyProfile:
    """Test the flat legacy sidewall schema"""

    def test_complete_reading_is_clear(self):
        reply = {"width": "205", "aspectRatio": 60, "wheelDiameter": "16", "fullSize": "205/60R16"}

        result = validate_response(ViewType.SIDEWALL, reply, SchemaProfile.LEGACY)

        assert result.tyre_size.measurements == ("205", "60", "16")
        assert result.tyre_size.is_image_clear is True

    def test_partial_reading_is_unclear(self):
        reply = {"width": "205", "aspectRatio": "not available", "wheelDiameter": "16", "fullSize": "not available"}

        result = validate_response(ViewType.SIDEWALL, reply, SchemaProfile.LEGACY)

        assert result.tyre_size.is_image_clear is False

    def test_nested_reply_rejected_by_legacy_profile(self):
        with pytest.raises(SchemaError) as exc_info:
            validate_response(ViewType.SIDEWALL, sidewall_reply_dict(), SchemaProfile.LEGACY)

        assert exc_info.value.field == "width"

    def test_flat_reply_rejected_by_current_profile(self):
        reply = {"width": "205", "aspectRatio": "60", "wheelDiameter": "16", "fullSize": "205/60R16"}

        with pytest.raises(SchemaError):
            validate_response(ViewType.SIDEWALL, reply, SchemaProfile.CURRENT)
