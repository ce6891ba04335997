"""
VN order CRUD, numbering, listing and history.
"""

from decimal import Decimal

import pytest

from dealerdesk.models import VnOrder, VnOrderDocument, VnOrderHistory
from dealerdesk.services import document_service, order_service
from dealerdesk.services.order_service import OrderAccessDeniedError, OrderNotFoundError
from dealerdesk.time_utils import utcnow
from dealerdesk.validation import ValidationError
from dealerdesk.workflow.roles import Role
from dealerdesk.workflow.stages import UnknownStageError


def _payload(**overrides):
    payload = {
        "customer_name": "Amina Cherif",
        "customer_phone": "0661 00 11 22",
        "vehicle_brand": "Dacia",
        "vehicle_model": "Sandero",
    }
    payload.update(overrides)
    return payload


class TestCreateOrder:

    def test_created_at_first_stage(self, order):
        assert order.status == "INSCRIPTION"
        assert order.stage_completion_dates == {}
        assert order.location == "PARC1"

    def test_balance_is_derived(self, order):
        assert order.total_price == Decimal("2500000")
        assert order.remaining_balance == Decimal("2000000")

    def test_order_numbers_are_sequential_per_year(self, db_session, acting):
        cdv = acting(Role.CDV)
        first = order_service.create_order(_payload(), acting_user=cdv)
        second = order_service.create_order(_payload(), acting_user=cdv)

        year = utcnow().year
        assert first.order_number == f"VN-{year}-0001"
        assert second.order_number == f"VN-{year}-0002"

    def test_status_cannot_be_chosen(self, db_session, acting):
        with pytest.raises(ValidationError):
            order_service.create_order(_payload(status="LIVRAISON"), acting_user=acting(Role.CDV))

    def test_required_fields(self, db_session, acting):
        with pytest.raises(ValidationError):
            order_service.create_order(_payload(customer_phone="  "), acting_user=acting(Role.CDV))

    def test_invalid_location(self, db_session, acting):
        with pytest.raises(ValidationError):
            order_service.create_order(_payload(location="GARAGE"), acting_user=acting(Role.CDV))

    def test_negative_amount_rejected(self, db_session, acting):
        with pytest.raises(ValidationError):
            order_service.create_order(_payload(total_price=-10), acting_user=acting(Role.CDV))

    @pytest.mark.parametrize("role", [Role.GED, Role.ADV, Role.MAGASIN, Role.IMMATRICULATION])
    def test_roles_that_cannot_create(self, db_session, acting, role):
        with pytest.raises(OrderAccessDeniedError):
            order_service.create_order(_payload(), acting_user=acting(role))
        assert db_session.query(VnOrder).count() == 0

    def test_commercial_can_create(self, db_session, acting):
        created = order_service.create_order(_payload(), acting_user=acting(Role.COMMERCIAL))
        history = db_session.query(VnOrderHistory).filter_by(order_id=created.id).all()
        assert [h.action for h in history] == ["ORDER_CREATED"]


class TestUpdateOrder:

    def test_patch_recomputes_balance(self, order, acting):
        updated, changed = order_service.update_order(
            order.id, {"advance_payment": "2600000"}, acting_user=acting(Role.COMMERCIAL)
        )
        assert changed is True
        assert updated.remaining_balance == Decimal("-100000")

    def test_unchanged_patch(self, order, acting):
        _, changed = order_service.update_order(
            order.id, {"customer_name": "Karim Benali"}, acting_user=acting(Role.CDV)
        )
        assert changed is False

    def test_status_is_not_editable(self, order, acting):
        with pytest.raises(ValidationError):
            order_service.update_order(order.id, {"status": "LIVRAISON"}, acting_user=acting(Role.SYS_ADMIN))
        with pytest.raises(ValidationError):
            order_service.update_order(order.id, {"stage_completion_dates": {}}, acting_user=acting(Role.SYS_ADMIN))

    def test_unknown_field_rejected(self, order, acting):
        with pytest.raises(ValidationError):
            order_service.update_order(order.id, {"order_number": "VN-1"}, acting_user=acting(Role.CDV))

    def test_ged_cannot_edit(self, order, acting):
        with pytest.raises(OrderAccessDeniedError):
            order_service.update_order(order.id, {"customer_name": "X"}, acting_user=acting(Role.GED))

    def test_missing_order(self, db_session, acting):
        with pytest.raises(OrderNotFoundError):
            order_service.update_order(999, {"customer_name": "X"}, acting_user=acting(Role.CDV))


class TestDeleteOrder:

    @pytest.mark.parametrize("role", [Role.DIRECTOR, Role.CDV, Role.COMMERCIAL])
    def test_only_sys_admin_deletes(self, order, acting, role):
        with pytest.raises(OrderAccessDeniedError):
            order_service.delete_order(order.id, acting_user=acting(role))

    def test_delete_removes_documents_and_history(self, order, acting, advance, db_session):
        advance(order.id, "PROFORMA")
        document_service.record_document(
            order.id, "proforma", "pf.pdf", "https://files.local/pf.pdf", acting_user=acting(Role.COMMERCIAL)
        )

        order_service.delete_order(order.id, acting_user=acting(Role.SYS_ADMIN))

        assert db_session.query(VnOrder).count() == 0
        assert db_session.query(VnOrderDocument).count() == 0
        assert db_session.query(VnOrderHistory).count() == 0


class TestListOrders:

    def test_search_and_filter(self, db_session, acting, advance):
        cdv = acting(Role.CDV)
        a = order_service.create_order(_payload(customer_name="Yacine Haddad"), acting_user=cdv)
        order_service.create_order(_payload(customer_name="Lina Mansouri"), acting_user=cdv)
        advance(a.id, "FACTURATION")

        assert [o.id for o in order_service.list_orders(search="haddad")["items"]] == [a.id]
        assert [o.id for o in order_service.list_orders(status="FACTURATION")["items"]] == [a.id]
        assert order_service.list_orders()["count"] == 2

    def test_newest_first_and_paging(self, db_session, acting):
        cdv = acting(Role.CDV)
        ids = [order_service.create_order(_payload(), acting_user=cdv).id for _ in range(3)]

        page = order_service.list_orders(limit=2)
        assert [o.id for o in page["items"]] == [ids[2], ids[1]]
        assert page["count"] == 3
        assert order_service.list_orders(limit=1000)["limit"] == order_service.MAX_PAGE_SIZE

    def test_unknown_status_filter(self, db_session):
        with pytest.raises(UnknownStageError):
            order_service.list_orders(status="LIVRE")

    def test_status_counts(self, order, acting, advance):
        order_service.create_order(_payload(), acting_user=acting(Role.CDV))
        advance(order.id, "ARRIVAGE")

        counts = order_service.status_counts()
        assert counts["INSCRIPTION"] == 1
        assert counts["ARRIVAGE"] == 1
        assert counts["DOSSIER_DAIRA"] == 0
        assert len(counts) == 10


class TestOrderAccess:

    def test_viewer_roles(self, order, acting):
        assert order_service.get_order(order.id, acting_user=acting(Role.LIVRAISON)).id == order.id

    def test_magasin_cannot_view(self, order, acting):
        with pytest.raises(OrderAccessDeniedError):
            order_service.get_order(order.id, acting_user=acting(Role.MAGASIN))

    def test_lookup_by_number(self, order):
        assert order_service.get_order_by_number(order.order_number).id == order.id
        with pytest.raises(OrderNotFoundError):
            order_service.get_order_by_number("VN-1999-0001")
