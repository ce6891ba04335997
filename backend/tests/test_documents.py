"""
Stage documents: recording sets the stage flag, deletion clears it once no
document of the same kind remains.
"""

import pytest

from dealerdesk.extensions import db
from dealerdesk.models import VnOrder, VnOrderDocument
from dealerdesk.services import document_service, workflow_service
from dealerdesk.services.document_service import DocumentNotFoundError
from dealerdesk.services.workflow_service import StageAccessDeniedError, StageNotReachedError
from dealerdesk.validation import ValidationError
from dealerdesk.workflow.roles import Role


def _stage_data(order_id, stage):
    db.session.expire_all()
    order = db.session.get(VnOrder, order_id)
    return (order.stage_completion_dates.get(stage) or {}).get("data", {})


def _record(order_id, kind, acting_user, name="scan.pdf"):
    return document_service.record_document(
        order_id, kind, name, f"https://files.local/{name}", acting_user=acting_user
    )


class TestRecordDocument:

    def test_sets_stage_flag_and_stage(self, order, acting, advance):
        advance(order.id, "PROFORMA")
        document = _record(order.id, "proforma", acting(Role.COMMERCIAL))

        assert document.stage == "PROFORMA"
        assert document.document_type == "PROFORMA_INVOICE"
        assert _stage_data(order.id, "PROFORMA") == {"documentUploaded": True}

    def test_unlocks_completion(self, order, acting, advance):
        advance(order.id, "PROFORMA")
        commercial = acting(Role.COMMERCIAL)
        _record(order.id, "proforma", commercial)

        result = workflow_service.complete_stage(order.id, acting_user=commercial)
        assert result.new_stage == "COMMANDE"

    def test_yellow_card_needs_both_kinds(self, order, acting, advance):
        advance(order.id, "CARTE_JAUNE")
        livraison = acting(Role.LIVRAISON)

        _record(order.id, "invoice_scan", livraison, "facture.pdf")
        assert _stage_data(order.id, "CARTE_JAUNE") == {"scanFacture": True}

        _record(order.id, "yellow_card", livraison, "carte.jpg")
        assert _stage_data(order.id, "CARTE_JAUNE") == {"scanFacture": True, "carteJaune": True}

    def test_role_without_stage_access(self, order, acting, advance):
        advance(order.id, "PROFORMA")
        with pytest.raises(StageAccessDeniedError):
            _record(order.id, "proforma", acting(Role.GED))
        assert db.session.query(VnOrderDocument).count() == 0

    def test_stage_not_reached(self, order, acting):
        with pytest.raises(StageNotReachedError):
            _record(order.id, "delivery_note", acting(Role.CDV))

    @pytest.mark.parametrize("kind,name,url", [
        ("passport", "scan.pdf", "https://files.local/scan.pdf"),
        ("proforma", "", "https://files.local/scan.pdf"),
        ("proforma", "scan.pdf", "   "),
        ("proforma", "scan.exe", "https://files.local/scan.exe"),
    ])
    def test_invalid_input(self, order, acting, advance, kind, name, url):
        advance(order.id, "PROFORMA")
        with pytest.raises(ValidationError):
            document_service.record_document(order.id, kind, name, url, acting_user=acting(Role.CDV))


class TestListAndDelete:

    def test_grouped_by_stage_in_pipeline_order(self, order, acting, advance):
        advance(order.id, "CARTE_JAUNE")
        cdv = acting(Role.CDV)
        _record(order.id, "yellow_card", cdv, "carte.png")
        _record(order.id, "proforma", cdv, "pf.pdf")

        grouped = document_service.list_documents(order.id)
        assert list(grouped) == ["PROFORMA", "CARTE_JAUNE"]

    def test_delete_last_document_clears_flag(self, order, acting, advance):
        advance(order.id, "PROFORMA")
        commercial = acting(Role.COMMERCIAL)
        first = _record(order.id, "proforma", commercial, "pf1.pdf")
        second = _record(order.id, "proforma", commercial, "pf2.pdf")

        document_service.delete_document(order.id, first.id, acting_user=commercial)
        assert _stage_data(order.id, "PROFORMA") == {"documentUploaded": True}

        document_service.delete_document(order.id, second.id, acting_user=commercial)
        assert _stage_data(order.id, "PROFORMA") == {"documentUploaded": False}

    def test_delete_unknown_document(self, order, acting):
        with pytest.raises(DocumentNotFoundError):
            document_service.delete_document(order.id, 4242, acting_user=acting(Role.CDV))

    def test_delete_requires_stage_access(self, order, acting, advance):
        advance(order.id, "PROFORMA")
        document = _record(order.id, "proforma", acting(Role.COMMERCIAL))
        with pytest.raises(StageAccessDeniedError):
            document_service.delete_document(order.id, document.id, acting_user=acting(Role.LIVRAISON))
