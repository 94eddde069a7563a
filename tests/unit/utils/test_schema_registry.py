import pytest

from taskgate.schemas.validator import validate_data
from taskgate.utils.schema_registry import available_schemas, load_schema


class TestSchemaRegistry:
    """Test loading of the evidence and report schemas."""

    def test_lists_every_shipped_schema(self):
        assert available_schemas() == (
            "audit_report",
            "compliance_certificate",
            "technical_debt",
            "test_results",
            "validation_report",
        )

    def test_loads_with_or_without_suffix(self):
        schema = load_schema("test_results")
        assert schema["title"] == "Test Results Schema"
        assert "functionalTests" in schema["required"]
        assert load_schema("test_results.schema.json") == schema

    def test_unknown_schema_lists_available(self):
        with pytest.raises(KeyError, match="Available schemas: audit_report"):
            load_schema("case_bundle")


class TestValidateData:
    """Test validation against package schemas."""

    def test_non_strict_returns_messages(self):
        ok, errors = validate_data({"taskId": "T014"}, "test_results", strict=False)
        assert not ok
        assert "'timestamp' is a required property" in errors

    def test_nested_errors_carry_their_path(self):
        results = {
            "taskId": "T014",
            "timestamp": "1970-01-01T00:00:00Z",
            "validationStatus": {"endpoint": "PASS"},
            "functionalTests": {"create": {"status": "MAYBE"}},
        }
        ok, errors = validate_data(results, "test_results", strict=False)
        assert not ok
        assert errors[0].startswith("functionalTests.create.status: ")

    def test_strict_raises(self):
        with pytest.raises(ValueError, match="Schema validation failed for 'technical_debt'"):
            validate_data({}, "technical_debt")

    def test_valid_document(self):
        certificate = {
            "schemaVersion": "1.0",
            "taskId": "T014",
            "timestamp": "1970-01-01T00:00:00Z",
            "status": "APPROVED",
            "gates": {"implementation": True, "evidence": True, "compliance": True},
            "evidenceDir": "evidence/T014",
            "evidenceHashes": {"interaction.log": "a" * 64},
        }
        assert validate_data(certificate, "compliance_certificate") == (True, [])
