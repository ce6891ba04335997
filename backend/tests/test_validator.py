"""
Stage completion validator and per-stage capture records.
"""

import pytest

from dealerdesk.workflow.capture import (
    CaptureFieldError,
    FacturationCapture,
    capture_type,
    read_stage_entry,
)
from dealerdesk.workflow.roles import Role
from dealerdesk.workflow.stages import STAGE_NAMES
from dealerdesk.workflow.validator import can_complete_stage, missing_requirements, stage_warnings


COMPLETE_DATA = {
    "INSCRIPTION": {"callResult": "ok_pour_venir"},
    "PROFORMA": {"documentUploaded": True},
    "COMMANDE": {"documentUploaded": True},
    "VALIDATION": {"documentUploaded": True},
    "ACCUSÉ": {"documentUploaded": True},
    "FACTURATION": {"vehicle_vin": "VF1RJA00012345678", "tropPercu": "non"},
    "ARRIVAGE": {"documentUploaded": True, "avaries": "ras", "location": "PARC2"},
    "CARTE_JAUNE": {"scanFacture": True, "carteJaune": True},
    "LIVRAISON": {"documentUploaded": True, "deliveryDate": "2026-10-01"},
    "DOSSIER_DAIRA": {"documentUploaded": True},
}


class TestExitCriteria:

    @pytest.mark.parametrize("stage", STAGE_NAMES)
    def test_complete_data_passes(self, stage):
        assert can_complete_stage(stage, COMPLETE_DATA[stage], Role.CDV)

    @pytest.mark.parametrize("stage", STAGE_NAMES)
    def test_empty_data_fails(self, stage):
        assert not can_complete_stage(stage, {}, Role.CDV)
        assert missing_requirements(stage, {})

    def test_ged_completes_accuse_with_document(self):
        assert can_complete_stage("ACCUSÉ", {"documentUploaded": True}, Role.GED)

    def test_document_flag_must_be_true(self):
        assert not can_complete_stage("PROFORMA", {"documentUploaded": False}, Role.COMMERCIAL)
        assert not can_complete_stage("PROFORMA", {"documentUploaded": "true"}, Role.COMMERCIAL)

    def test_whitespace_counts_as_absent(self):
        assert not can_complete_stage("INSCRIPTION", {"callResult": "   "}, Role.CDV)
        data = {"vehicle_vin": "  ", "tropPercu": "non"}
        assert not can_complete_stage("FACTURATION", data, Role.ADV)
        assert missing_requirements("FACTURATION", data) == ["Vehicle VIN"]

    def test_yellow_card_needs_both_documents(self):
        assert not can_complete_stage("CARTE_JAUNE", {"scanFacture": True}, Role.LIVRAISON)
        assert missing_requirements("CARTE_JAUNE", {"scanFacture": True}) == ["Yellow card uploaded"]

    def test_delivery_needs_date(self):
        assert not can_complete_stage("LIVRAISON", {"documentUploaded": True}, Role.LIVRAISON)

    def test_unknown_stage_fails_closed(self):
        assert not can_complete_stage("LIVRE", {"documentUploaded": True}, Role.CDV)
        assert not can_complete_stage("LIVRE", {}, Role.SYS_ADMIN)
        assert missing_requirements("LIVRE", {}) == []


class TestInvoicingBoundary:

    def test_commercial_with_empty_bag(self):
        assert not can_complete_stage("FACTURATION", {}, "commercial")
        assert missing_requirements("FACTURATION", {}) == ["Vehicle VIN", "Overpayment (yes/no)"]

    def test_vin_alone_is_not_enough(self):
        assert not can_complete_stage("FACTURATION", {"vehicle_vin": "VF1"}, "commercial")

    def test_vin_and_overpayment_choice(self):
        assert can_complete_stage("FACTURATION", {"vehicle_vin": "VF1", "tropPercu": "oui"}, "commercial")

    def test_bypass_role_without_vin(self):
        data = {"tropPercu": "non"}
        assert not can_complete_stage("FACTURATION", data, Role.ADV)
        assert can_complete_stage("FACTURATION", data, Role.DIRECTOR)

    def test_overpayment_amount_is_not_gating(self):
        data = {"vehicle_vin": "VF1", "tropPercu": "oui"}
        assert can_complete_stage("FACTURATION", data, Role.ADV)
        assert stage_warnings("FACTURATION", data) == ["Overpayment declared without an amount"]
        data["tropPercuAmount"] = 15000
        assert stage_warnings("FACTURATION", data) == []

    def test_vin_is_stripped(self):
        assert FacturationCapture({"vehicle_vin": " ABC "}).vin() == "ABC"
        assert FacturationCapture({"vehicle_vin": "   "}).vin() is None
        assert FacturationCapture({}).vin() is None


class TestArrivalDamageNote:

    def test_damage_with_empty_note_still_completes(self):
        data = {"documentUploaded": True, "avaries": "oui", "avariesNote": "", "location": "PARC1"}
        assert can_complete_stage("ARRIVAGE", data, Role.ADV)

    def test_damage_with_empty_note_is_flagged(self):
        data = {"documentUploaded": True, "avaries": "oui", "avariesNote": "", "location": "PARC1"}
        assert stage_warnings("ARRIVAGE", data) == ["Damage reported without a description"]

    def test_damage_with_note_has_no_warning(self):
        data = {"documentUploaded": True, "avaries": "oui", "avariesNote": "Scratch on rear door", "location": "PARC1"}
        assert stage_warnings("ARRIVAGE", data) == []

    def test_location_is_required(self):
        data = {"documentUploaded": True, "avaries": "ras"}
        assert missing_requirements("ARRIVAGE", data) == ["Parking location"]


class TestBypass:

    @pytest.mark.parametrize("role", [Role.SYS_ADMIN, Role.DIRECTOR, Role.IMMATRICULATION])
    @pytest.mark.parametrize("stage", STAGE_NAMES)
    def test_bypass_roles_always_complete(self, role, stage):
        assert can_complete_stage(stage, {}, role)
        assert can_complete_stage(stage, None, role)
        assert can_complete_stage(stage, {"documentUploaded": False, "callResult": " "}, role)

    def test_unknown_role_gets_no_bypass(self):
        assert not can_complete_stage("PROFORMA", {}, "super_user")


class TestCaptureFields:

    def test_unknown_field_rejected(self):
        with pytest.raises(CaptureFieldError):
            capture_type("INSCRIPTION").get_field("vehicle_vin")

    def test_choice_coercion(self):
        field = capture_type("INSCRIPTION").get_field("callResult")
        assert field.coerce(" hesitant ") == "hesitant"
        assert field.coerce("") is None
        with pytest.raises(CaptureFieldError):
            field.coerce("maybe")

    def test_bool_coercion_is_strict(self):
        field = capture_type("PROFORMA").get_field("documentUploaded")
        assert field.coerce(True) is True
        with pytest.raises(CaptureFieldError):
            field.coerce("yes")

    def test_amount_coercion(self):
        field = capture_type("FACTURATION").get_field("tropPercuAmount")
        assert field.coerce("1500.5") == 1500.5
        assert field.coerce(" ") is None
        for bad in (-1, "abc", True, float("nan")):
            with pytest.raises(CaptureFieldError):
                field.coerce(bad)

    def test_date_coercion(self):
        field = capture_type("LIVRAISON").get_field("deliveryDate")
        assert field.coerce("2026-10-18") == "2026-10-18"
        assert field.coerce("2026-10-18T09:30:00Z") == "2026-10-18"
        for bad in ("18/10/2026", "2026-10-18garbage", "2026-10-18T25:00"):
            with pytest.raises(CaptureFieldError):
                field.coerce(bad)

    def test_values_fit_order_columns(self):
        vin = capture_type("FACTURATION").get_field("vehicle_vin")
        assert vin.coerce("V" * 32) == "V" * 32
        with pytest.raises(CaptureFieldError):
            vin.coerce("V" * 33)

        amount = capture_type("FACTURATION").get_field("tropPercuAmount")
        assert amount.coerce("999999999999") == 999999999999
        with pytest.raises(CaptureFieldError):
            amount.coerce(10 ** 13)

    def test_document_flags(self):
        flags = {f.key for f in capture_type("CARTE_JAUNE").fields if f.document_flag}
        assert flags == {"scanFacture", "carteJaune"}
        assert not capture_type("ARRIVAGE").get_field("location").document_flag


class TestReadStageEntry:

    def test_missing_entry(self):
        assert read_stage_entry({}, "PROFORMA") == {"data": {}}
        assert read_stage_entry(None, "PROFORMA") == {"data": {}}

    def test_legacy_timestamp_string(self):
        entry = read_stage_entry({"PROFORMA": "2025-01-02T03:04:05Z"}, "PROFORMA")
        assert entry == {"data": {}, "completed_at": "2025-01-02T03:04:05Z"}

    def test_returns_a_copy(self):
        snapshot = {"PROFORMA": {"data": {"documentUploaded": True}}}
        entry = read_stage_entry(snapshot, "PROFORMA")
        entry["data"]["documentUploaded"] = False
        assert snapshot["PROFORMA"]["data"]["documentUploaded"] is True
