"""
Unit tests for the smart code grammar.

Verifies:
- Accepted and rejected shapes
- Parsed parts (domain, segments, version)
- Ledger line classification by segment
"""

import pytest

from hera_kernel.domain import smart_code
from hera_kernel.exceptions import InvalidSmartCodeError


class TestValidate:
    @pytest.mark.parametrize(
        "code",
        [
            "HERA.SALON.TXN.SALE.CREATE.v1",
            "HERA.SALON.CRM.REL.MEMBER_OF.v1",
            "HERA.SALON.FIN.GL.LINE.v12",
            "HERA.ABC.AA.BB.CC.DD.EE.FF.GG.HH.v1",
            "HERA.RESTAURANT2.INV.STOCK_LEVEL.ADJUST.v3",
        ],
    )
    def test_valid_codes(self, code):
        parsed = smart_code.validate(code)
        assert parsed.value == code
        assert str(parsed) == code

    def test_parts(self):
        parsed = smart_code.validate("HERA.SALON.CRM.CUSTOMER.PROFILE.v2")
        assert parsed.domain == "SALON"
        assert parsed.segments == ("CRM", "CUSTOMER", "PROFILE")
        assert parsed.version == 2

    @pytest.mark.parametrize(
        "code, fragment",
        [
            ("SALON.CRM.CUSTOMER.PROFILE.v1", "must start with 'HERA.'"),
            ("HERA.SALON.CRM.CUSTOMER.PROFILE", "version segment"),
            ("HERA.SALON.CRM.CUSTOMER.PROFILE.V1", "version segment"),
            ("HERA.sa.CRM.CUSTOMER.PROFILE.v1", "domain segment"),
            ("HERA.SALON.CRM.PROFILE.v1", "at least 3 segments"),
            ("HERA.SALON.A.SALE.CREATE.v1", "2-30 uppercase"),
            ("HERA.SALON.AA.BB.CC.DD.EE.FF.GG.HH.II.v1", "at most 8 segments"),
            ("HERA.SALON.CRM.customer.PROFILE.v1", "segment 'customer'"),
        ],
    )
    def test_invalid_codes_explain_why(self, code, fragment):
        with pytest.raises(InvalidSmartCodeError) as exc_info:
            smart_code.validate(code)
        assert exc_info.value.code == "INVALID_SMART_CODE"
        assert fragment in exc_info.value.reason

    @pytest.mark.parametrize("value", [None, "", 42, ["HERA"]])
    def test_missing_or_non_string(self, value):
        with pytest.raises(InvalidSmartCodeError):
            smart_code.validate(value)

    def test_field_name_carried(self):
        with pytest.raises(InvalidSmartCodeError) as exc_info:
            smart_code.validate("bad", field="lines[2].smart_code")
        assert exc_info.value.field == "lines[2].smart_code"
        assert "lines[2].smart_code" in str(exc_info.value)

    def test_is_valid_never_raises(self):
        assert smart_code.is_valid("HERA.SALON.TXN.SALE.CREATE.v1")
        assert not smart_code.is_valid("HERA.SALON.TXN.v1")
        assert not smart_code.is_valid(None)


class TestLedgerClassification:
    def test_gl_segment_is_ledger(self):
        assert smart_code.is_ledger_line("HERA.SALON.FIN.GL.LINE.v1")

    def test_business_line_is_not_ledger(self):
        assert not smart_code.is_ledger_line("HERA.SALON.TXN.LINE.SERVICE.v1")

    def test_domain_named_gl_does_not_count(self):
        # only segments after the domain are considered
        assert not smart_code.is_ledger_line("HERA.GLX.TXN.LINE.SERVICE.v1")

    def test_custom_segments(self):
        code = "HERA.SALON.FIN.LEDGER.LINE.v1"
        assert not smart_code.is_ledger_line(code)
        assert smart_code.is_ledger_line(code, {"LEDGER"})

    def test_invalid_code_is_not_ledger(self):
        assert not smart_code.is_ledger_line("HERA.GL")
